#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
包和驱动管理模块
负责向已挂载镜像添加/移除可选组件、语言包、更新包、驱动和功能
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
import logging

from utils.file_utils import find_files, format_size

logger = logging.getLogger("BootImageManager")

# 单个组件处理状态
ADDED = "added"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ComponentResult:
    """单个可选组件的处理结果"""
    name: str
    package: str  # ADDED / SKIPPED / FAILED
    language_pack: str  # ADDED / SKIPPED / FAILED
    message: str = ""

    @property
    def ok(self) -> bool:
        return FAILED not in (self.package, self.language_pack)


class PackageManager:
    """包和驱动管理器"""

    def __init__(self, engine):
        self.engine = engine

    def _check_mounted(self, mount_dir: Path) -> Optional[str]:
        mount_dir = Path(mount_dir)
        if not mount_dir.is_dir() or not any(mount_dir.iterdir()):
            return f"镜像未挂载: {mount_dir}"
        return None

    def add_package(self, mount_dir: Path, package_path: Path) -> Tuple[bool, str]:
        """添加单个包或更新 (.cab / .msu)

        Args:
            mount_dir: 挂载目录
            package_path: 包文件路径

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        error = self._check_mounted(mount_dir)
        if error:
            return False, error

        package_path = Path(package_path)
        if not package_path.is_file():
            logger.error(f"找不到包文件: {package_path}")
            return False, f"找不到包文件: {package_path}"

        logger.info(f"添加包: {package_path} ({format_size(package_path.stat().st_size)})")
        success, message = self.engine.add_package(mount_dir, package_path)
        if success:
            logger.info(f"包添加成功: {package_path.name}")
        else:
            logger.error(message)
        return success, message

    def get_component_paths(self, oc_path: Path, name: str, language: str) -> Tuple[Path, Path]:
        """计算组件主包和语言包的路径

        主包:   WinPE_OCs/<name>.cab
        语言包: WinPE_OCs/<language>/<name>_<language>.cab
        """
        oc_path = Path(oc_path)
        return oc_path / f"{name}.cab", oc_path / language / f"{name}_{language}.cab"

    def add_components(self, mount_dir: Path, components: List[str], oc_path: Path,
                       language: str = "en-us") -> Tuple[bool, str, List[ComponentResult]]:
        """添加WinPE可选组件及其语言包

        文件缺失只记录警告并继续处理后续组件。

        Args:
            mount_dir: 挂载目录
            components: 组件名称列表，如 WinPE-WMI
            oc_path: WinPE_OCs 目录
            language: 语言代码

        Returns:
            Tuple[bool, str, List[ComponentResult]]: (成功状态, 消息, 每个组件的结果)
        """
        error = self._check_mounted(mount_dir)
        if error:
            return False, error, []

        results = []
        total = len(components)
        logger.info(f"开始添加 {total} 个可选组件 (语言: {language})")

        for i, name in enumerate(components, 1):
            logger.info(f"[{i}/{total}] 正在处理组件: {name}")
            package_path, language_path = self.get_component_paths(oc_path, name, language)
            notes = []

            if package_path.exists():
                ok, message = self.engine.add_package(mount_dir, package_path)
                package_state = ADDED if ok else FAILED
                if not ok:
                    logger.error(f"  组件添加失败: {message}")
                    notes.append(message)
            else:
                package_state = SKIPPED
                logger.warning(f"  组件文件缺失: {package_path}")
                notes.append(f"缺少 {package_path.name}")

            if language_path.exists():
                ok, message = self.engine.add_package(mount_dir, language_path)
                language_state = ADDED if ok else FAILED
                if not ok:
                    logger.error(f"  语言包添加失败: {message}")
                    notes.append(message)
            else:
                language_state = SKIPPED
                logger.warning(f"  语言包文件缺失: {language_path}")
                notes.append(f"缺少 {language_path.name}")

            results.append(ComponentResult(name, package_state, language_state, "; ".join(notes)))

        added = sum(1 for r in results if r.package == ADDED)
        languages = sum(1 for r in results if r.language_pack == ADDED)
        failed = [r.name for r in results if not r.ok]
        skipped = sum(1 for r in results if SKIPPED in (r.package, r.language_pack))

        logger.info("组件添加完成统计:")
        logger.info(f"   成功: {added}/{total} 个组件, {languages} 个语言包")
        logger.info(f"   缺失文件: {skipped} 个组件")
        logger.info(f"   失败: {len(failed)} 个组件")

        message = f"添加了 {added}/{total} 个组件和 {languages} 个语言包"
        if failed:
            return False, f"{message}，失败: {', '.join(failed)}", results
        return True, message, results

    def get_available_components(self, oc_path: Path) -> List[Dict[str, Any]]:
        """列出 WinPE_OCs 目录中的可选组件"""
        oc_path = Path(oc_path)
        if not oc_path.is_dir():
            return []
        return [
            {
                "name": cab.stem,
                "path": str(cab),
                "size_mb": round(cab.stat().st_size / (1024 * 1024), 2)
            }
            for cab in sorted(oc_path.glob("*.cab"))
        ]

    def add_drivers(self, mount_dir: Path, driver_paths: List[str],
                    force_unsigned: bool = False) -> Tuple[bool, str]:
        """添加驱动程序，目录按递归方式添加

        Args:
            mount_dir: 挂载目录
            driver_paths: 驱动文件(.inf)或目录
            force_unsigned: 是否允许未签名驱动

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        error = self._check_mounted(mount_dir)
        if error:
            return False, error

        if not driver_paths:
            return True, "没有需要添加的驱动"

        success_count = 0
        error_messages = []

        for driver_path in driver_paths:
            path = Path(driver_path)
            if not path.exists():
                error_messages.append(f"驱动程序路径不存在: {driver_path}")
                logger.error(error_messages[-1])
                continue

            success, message = self.engine.add_driver(
                mount_dir, path, recurse=path.is_dir(), force_unsigned=force_unsigned
            )
            if success:
                success_count += 1
                logger.info(f"成功添加驱动: {driver_path}")
            else:
                error_messages.append(message)
                logger.error(message)

        if error_messages:
            return False, f"成功添加 {success_count}/{len(driver_paths)} 个驱动，错误: {'; '.join(error_messages)}"
        return True, f"成功添加 {success_count}/{len(driver_paths)} 个驱动"

    def remove_drivers(self, mount_dir: Path, driver_folder: Path) -> Tuple[bool, str]:
        """按目录中的 .inf 文件逐个移除驱动

        Args:
            mount_dir: 挂载目录
            driver_folder: 包含驱动描述文件的目录

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        error = self._check_mounted(mount_dir)
        if error:
            return False, error

        inf_files = find_files(driver_folder, ".inf")
        if not inf_files:
            logger.info(f"目录中没有驱动描述文件: {driver_folder}")
            return True, "没有需要移除的驱动"

        failed = []
        for inf_file in inf_files:
            success, message = self.engine.remove_driver(mount_dir, str(inf_file))
            if not success:
                failed.append(inf_file.name)
                logger.error(message)

        removed = len(inf_files) - len(failed)
        if failed:
            return False, f"移除了 {removed}/{len(inf_files)} 个驱动，失败: {', '.join(failed)}"
        return True, f"移除了 {removed} 个驱动"

    def remove_driver(self, mount_dir: Path, published_name: str) -> Tuple[bool, str]:
        """按发布名称移除驱动，如 oem3.inf"""
        error = self._check_mounted(mount_dir)
        if error:
            return False, error
        return self.engine.remove_driver(mount_dir, published_name)

    def enable_features(self, mount_dir: Path, features: List[str],
                        source: Optional[Path] = None) -> Tuple[bool, str]:
        """启用可选功能"""
        return self._apply_features(mount_dir, features, enable=True, source=source)

    def disable_features(self, mount_dir: Path, features: List[str]) -> Tuple[bool, str]:
        """禁用可选功能"""
        return self._apply_features(mount_dir, features, enable=False)

    def _apply_features(self, mount_dir: Path, features: List[str], enable: bool,
                        source: Optional[Path] = None) -> Tuple[bool, str]:
        error = self._check_mounted(mount_dir)
        if error:
            return False, error

        action = "启用" if enable else "禁用"
        failed = []
        for feature in features:
            if enable:
                success, message = self.engine.enable_feature(mount_dir, feature, source=source)
            else:
                success, message = self.engine.disable_feature(mount_dir, feature)
            if success:
                logger.info(f"{action}功能成功: {feature}")
            else:
                failed.append(feature)
                logger.error(message)

        if failed:
            return False, f"{action}功能失败: {', '.join(failed)}"
        return True, f"{action}了 {len(features)} 个功能"

    def remove_packages(self, mount_dir: Path, package_names: List[str]) -> Tuple[bool, str]:
        """按包名称移除包"""
        error = self._check_mounted(mount_dir)
        if error:
            return False, error

        failed = []
        for name in package_names:
            success, message = self.engine.remove_package(mount_dir, name)
            if not success:
                failed.append(name)
                logger.error(message)

        if failed:
            return False, f"移除包失败: {', '.join(failed)}"
        return True, f"移除了 {len(package_names)} 个包"
