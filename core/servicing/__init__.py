# -*- coding: utf-8 -*-
"""
镜像服务模块
通过服务引擎对镜像执行挂载、组件、驱动、功能、清理、导出和拆分操作
"""

from .engine import ServicingEngine
from .dism_engine import DismEngine
from .mount_manager import MountManager
from .package_manager import PackageManager, ComponentResult
from .image_manager import ImageManager

__all__ = [
    'ServicingEngine',
    'DismEngine',
    'MountManager',
    'PackageManager',
    'ComponentResult',
    'ImageManager'
]
