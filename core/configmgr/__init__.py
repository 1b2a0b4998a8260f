# -*- coding: utf-8 -*-
"""
Configuration Manager 集成模块
"""

from .admin_service import ConfigMgrClient, write_status_report

__all__ = [
    'ConfigMgrClient',
    'write_status_report'
]
