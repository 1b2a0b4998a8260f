#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
配置管理模块
负责管理镜像服务流程和Configuration Manager注册的各种配置
"""

import copy
import json
from pathlib import Path
from typing import Dict, List, Any, Optional
import logging

logger = logging.getLogger("BootImageManager")


class ConfigManager:
    """配置管理器类"""

    def __init__(self, config_file: Optional[Path] = None):
        self.project_root = Path(__file__).parent.parent
        if config_file is None:
            config_file = self.project_root / "config" / "servicing_config.json"
        self.config_file = Path(config_file)
        self.config_dir = self.config_file.parent
        self.default_config = self._get_default_config()
        self.config = self._load_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """获取默认配置"""
        return {
            "adk": {
                "install_path": "",  # ADK安装路径，留空自动检测
            },
            "winpe": {
                "architecture": "amd64",  # x86, amd64, arm64
                "language": "en-us",      # 语言包语言
                "components": [           # WinPE可选组件
                    "WinPE-WMI",
                    "WinPE-NetFX",
                    "WinPE-Scripting",
                    "WinPE-PowerShell",
                    "WinPE-StorageWMI",
                    "WinPE-DismCmdlets"
                ]
            },
            "image": {
                "source": "",              # 参考镜像，留空使用ADK中的winpe.wim
                "workspace": "",           # 工作目录
                "file_name": "boot.wim",   # 复制到工作目录后的文件名
                "index": 1,
                "mount_dir": ""            # 留空时为 工作目录/mount
            },
            "customization": {
                "drivers": [],          # 驱动文件或目录
                "features": [],         # 需要启用的可选功能
                "feature_source": "",   # 功能源文件 (/Source)
                "update_package": ""    # 累积更新 (.msu/.cab)
            },
            "export": {
                "enabled": True,
                "destination": "",      # 留空则原地导出
                "compress": "max",
                "split": False,
                "split_size_mb": 3800,
                "delete_after_split": True
            },
            "dism": {
                "timeout": None,        # 秒，None 表示一直等待
                "reset_base": True
            },
            "configmgr": {
                "provider": "",           # SMS Provider 主机名
                "boot_image_name": "",
                "description": "",
                "image_path_unc": "",     # 站点可访问的 UNC 路径
                "image_index": 1,
                "username": "",
                "password": "",
                "verify_ssl": True,
                "replace_existing": True,
                "report_path": "logs/configmgr_report.txt"
            }
        }

    def _load_config(self) -> Dict[str, Any]:
        """从文件加载配置"""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config = json.load(f)
                logger.info(f"配置文件加载成功: {self.config_file}")
                # 合并默认配置和加载的配置
                return self._merge_config(self.default_config, config)
            else:
                logger.info("配置文件不存在，使用默认配置")
                return copy.deepcopy(self.default_config)
        except (OSError, ValueError) as e:
            logger.error(f"加载配置文件失败: {str(e)}")
            return copy.deepcopy(self.default_config)

    def _merge_config(self, default: Dict, loaded: Dict) -> Dict:
        """合并配置，确保所有必要的键都存在"""
        result = copy.deepcopy(default)
        for key, value in loaded.items():
            if key in result and isinstance(value, dict) and isinstance(result[key], dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def save_config(self) -> bool:
        """保存配置到文件"""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, ensure_ascii=False, indent=2)
            logger.info(f"配置文件保存成功: {self.config_file}")
            return True
        except OSError as e:
            logger.error(f"保存配置文件失败: {str(e)}")
            return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """获取配置值，支持点号分隔的路径

        Args:
            key_path: 配置键路径，如 'winpe.architecture'
            default: 默认值
        """
        keys = key_path.split('.')
        value = self.config
        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any) -> bool:
        """设置配置值

        Args:
            key_path: 配置键路径，如 'winpe.architecture'
            value: 要设置的值
        """
        keys = key_path.split('.')
        config = self.config
        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]
        config[keys[-1]] = value
        logger.debug(f"配置更新: {key_path} = {value}")
        return True

    def get_workspace(self) -> Path:
        """获取工作目录，未配置时使用项目下的 workspace"""
        workspace = self.get("image.workspace")
        return Path(workspace) if workspace else self.project_root / "workspace"

    def get_image_path(self) -> Path:
        """获取工作目录中的镜像文件路径"""
        return self.get_workspace() / self.get("image.file_name", "boot.wim")

    def get_mount_dir(self) -> Path:
        """获取挂载目录"""
        mount_dir = self.get("image.mount_dir")
        return Path(mount_dir) if mount_dir else self.get_workspace() / "mount"

    def add_driver(self, driver_path: str) -> bool:
        """添加驱动程序路径"""
        drivers = self.config["customization"]["drivers"]
        if driver_path in drivers:
            return False
        drivers.append(driver_path)
        logger.info(f"添加驱动程序: {driver_path}")
        return True

    def remove_driver(self, driver_path: str) -> bool:
        """移除驱动程序路径"""
        drivers = self.config["customization"]["drivers"]
        if driver_path not in drivers:
            return False
        drivers.remove(driver_path)
        logger.info(f"移除驱动程序: {driver_path}")
        return True

    def get_available_architectures(self) -> List[str]:
        """获取可用的WinPE架构列表"""
        return ["x86", "amd64", "arm64"]
