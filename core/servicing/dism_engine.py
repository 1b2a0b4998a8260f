#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DISM服务引擎
把服务引擎接口的每个动作翻译成一条DISM命令
"""

from pathlib import Path
from typing import List, Optional, Tuple
import logging

from core.servicing.engine import ServicingEngine, QUERY_KINDS, COMPRESSION_TYPES

logger = logging.getLogger("BootImageManager")


class DismEngine(ServicingEngine):
    """基于 dism.exe 的服务引擎"""

    def __init__(self, adk_manager):
        self.adk = adk_manager

    def _run(self, args: List[str], action: str) -> Tuple[bool, str]:
        success, stdout, stderr = self.adk.run_dism_command(args)
        if success:
            return True, f"{action}成功"
        return False, f"{action}失败: {stderr or stdout}"

    def mount(self, image: Path, index: int, mount_dir: Path, read_only: bool = False) -> Tuple[bool, str]:
        args = [
            "/Mount-Wim",
            f"/WimFile:{image}",
            f"/Index:{index}",
            f"/MountDir:{mount_dir}"
        ]
        if read_only:
            args.append("/ReadOnly")
        return self._run(args, "挂载镜像")

    def unmount(self, mount_dir: Path, commit: bool = True) -> Tuple[bool, str]:
        args = [
            "/Unmount-Wim",
            f"/MountDir:{mount_dir}",
            "/Commit" if commit else "/Discard"
        ]
        return self._run(args, "提交并卸载镜像" if commit else "放弃更改并卸载镜像")

    def remount(self, mount_dir: Path) -> Tuple[bool, str]:
        return self._run(["/Remount-Wim", f"/MountDir:{mount_dir}"], "重新挂载镜像")

    def add_package(self, mount_dir: Path, package_path: Path, ignore_check: bool = False) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Add-Package",
            f"/PackagePath:{package_path}"
        ]
        if ignore_check:
            args.append("/IgnoreCheck")
        return self._run(args, f"添加包 {Path(package_path).name} ")

    def remove_package(self, mount_dir: Path, package_name: str) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Remove-Package",
            f"/PackageName:{package_name}"
        ]
        return self._run(args, f"移除包 {package_name} ")

    def add_driver(self, mount_dir: Path, driver_path: Path, recurse: bool = False,
                   force_unsigned: bool = False) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Add-Driver",
            f"/Driver:{driver_path}"
        ]
        if recurse:
            args.append("/Recurse")
        if force_unsigned:
            args.append("/ForceUnsigned")
        return self._run(args, f"添加驱动 {driver_path} ")

    def remove_driver(self, mount_dir: Path, driver: str) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Remove-Driver",
            f"/Driver:{driver}"
        ]
        return self._run(args, f"移除驱动 {driver} ")

    def enable_feature(self, mount_dir: Path, feature: str, source: Optional[Path] = None,
                       all_parents: bool = True) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Enable-Feature",
            f"/FeatureName:{feature}"
        ]
        if all_parents:
            args.append("/All")
        if source:
            args.extend([f"/Source:{source}", "/LimitAccess"])
        return self._run(args, f"启用功能 {feature} ")

    def disable_feature(self, mount_dir: Path, feature: str) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Disable-Feature",
            f"/FeatureName:{feature}"
        ]
        return self._run(args, f"禁用功能 {feature} ")

    def cleanup(self, mount_dir: Path, reset_base: bool = True) -> Tuple[bool, str]:
        args = [
            f"/Image:{mount_dir}",
            "/Cleanup-Image",
            "/StartComponentCleanup"
        ]
        if reset_base:
            args.append("/ResetBase")
        return self._run(args, "清理组件存储")

    def export(self, source: Path, index: int, destination: Path, compress: str = "max") -> Tuple[bool, str]:
        if compress not in COMPRESSION_TYPES:
            return False, f"不支持的压缩类型: {compress}"
        args = [
            "/Export-Image",
            f"/SourceImageFile:{source}",
            f"/SourceIndex:{index}",
            f"/DestinationImageFile:{destination}",
            f"/Compress:{compress}",
            "/CheckIntegrity"
        ]
        return self._run(args, "导出镜像")

    def split(self, image: Path, swm_file: Path, file_size_mb: int) -> Tuple[bool, str]:
        args = [
            "/Split-Image",
            f"/ImageFile:{image}",
            f"/SWMFile:{swm_file}",
            f"/FileSize:{file_size_mb}"
        ]
        return self._run(args, "拆分镜像")

    def query(self, kind: str, target: Path, index: Optional[int] = None) -> Tuple[bool, str]:
        verb = QUERY_KINDS.get(kind)
        if not verb:
            return False, f"不支持的查询类型: {kind}"

        if kind == "mounted":
            args = [verb]
        elif kind == "image":
            args = [verb, f"/WimFile:{target}"]
            if index:
                args.append(f"/Index:{index}")
        else:
            args = [f"/Image:{target}", verb, "/Format:Table"]

        success, stdout, stderr = self.adk.run_dism_command(args)
        return success, stdout if success else (stderr or stdout)

    def cleanup_mountpoints(self) -> Tuple[bool, str]:
        return self._run(["/Cleanup-Mountpoints"], "清理挂载点")
