#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
镜像服务引擎接口
定义对外部镜像服务引擎的全部调用，流程代码只依赖这个接口
"""

from pathlib import Path
from typing import Optional, Tuple

# 查询类型 -> DISM 参数
QUERY_KINDS = {
    "image": "/Get-WimInfo",
    "packages": "/Get-Packages",
    "drivers": "/Get-Drivers",
    "features": "/Get-Features",
    "mounted": "/Get-MountedWimInfo",
}

COMPRESSION_TYPES = ("none", "fast", "max", "recovery")


class ServicingEngine:
    """镜像服务引擎基类

    每个方法对应一个外部服务动作，返回 (成功状态, 消息)。
    query 返回 (成功状态, 原始输出文本)。
    """

    def mount(self, image: Path, index: int, mount_dir: Path, read_only: bool = False) -> Tuple[bool, str]:
        raise NotImplementedError

    def unmount(self, mount_dir: Path, commit: bool = True) -> Tuple[bool, str]:
        raise NotImplementedError

    def remount(self, mount_dir: Path) -> Tuple[bool, str]:
        raise NotImplementedError

    def add_package(self, mount_dir: Path, package_path: Path, ignore_check: bool = False) -> Tuple[bool, str]:
        raise NotImplementedError

    def remove_package(self, mount_dir: Path, package_name: str) -> Tuple[bool, str]:
        raise NotImplementedError

    def add_driver(self, mount_dir: Path, driver_path: Path, recurse: bool = False,
                   force_unsigned: bool = False) -> Tuple[bool, str]:
        raise NotImplementedError

    def remove_driver(self, mount_dir: Path, driver: str) -> Tuple[bool, str]:
        raise NotImplementedError

    def enable_feature(self, mount_dir: Path, feature: str, source: Optional[Path] = None,
                       all_parents: bool = True) -> Tuple[bool, str]:
        raise NotImplementedError

    def disable_feature(self, mount_dir: Path, feature: str) -> Tuple[bool, str]:
        raise NotImplementedError

    def cleanup(self, mount_dir: Path, reset_base: bool = True) -> Tuple[bool, str]:
        raise NotImplementedError

    def export(self, source: Path, index: int, destination: Path, compress: str = "max") -> Tuple[bool, str]:
        raise NotImplementedError

    def split(self, image: Path, swm_file: Path, file_size_mb: int) -> Tuple[bool, str]:
        raise NotImplementedError

    def query(self, kind: str, target: Path, index: Optional[int] = None) -> Tuple[bool, str]:
        raise NotImplementedError

    def cleanup_mountpoints(self) -> Tuple[bool, str]:
        raise NotImplementedError
