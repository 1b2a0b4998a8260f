#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
镜像挂载管理模块
负责镜像的挂载、卸载和重新挂载
"""

import shutil
import time
from pathlib import Path
from typing import Tuple
import logging

logger = logging.getLogger("BootImageManager")


class MountManager:
    """镜像挂载管理器"""

    def __init__(self, engine, retry_delay: float = 5.0):
        self.engine = engine
        self.retry_delay = retry_delay

    def mount_image(self, image_path: Path, index: int, mount_dir: Path) -> Tuple[bool, str]:
        """挂载镜像中的一个卷

        Args:
            image_path: 镜像文件路径
            index: 卷索引，从1开始
            mount_dir: 挂载目录

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        try:
            image_path = Path(image_path)
            mount_dir = Path(mount_dir)

            if not image_path.exists():
                logger.error(f"镜像文件不存在: {image_path}")
                return False, f"镜像文件不存在: {image_path}"

            if index < 1:
                return False, f"无效的镜像索引: {index}"

            logger.info("准备挂载镜像")
            logger.info(f"镜像文件: {image_path} (索引 {index})")
            logger.info(f"挂载目录: {mount_dir}")

            # 挂载目录不为空时先放弃之前的挂载
            if self.is_mounted(mount_dir):
                logger.warning("检测到挂载目录不为空，先放弃之前的挂载")
                discard_ok, discard_msg = self.engine.unmount(mount_dir, commit=False)
                if not discard_ok:
                    logger.warning(f"放弃之前的挂载失败: {discard_msg}")
                if self.is_mounted(mount_dir):
                    return False, f"挂载目录不为空且无法清理: {mount_dir}"

            mount_dir.mkdir(parents=True, exist_ok=True)

            mount_start_time = time.time()
            success, message = self.engine.mount(image_path, index, mount_dir)
            logger.info(f"挂载命令耗时: {time.time() - mount_start_time:.1f} 秒")

            if not success:
                logger.error(message)
                return False, message

            if not self.is_mounted(mount_dir):
                logger.error("挂载目录为空，挂载可能失败")
                return False, "镜像挂载失败: 挂载目录为空"

            logger.info("镜像挂载成功")
            return True, f"镜像挂载成功: {image_path.name} 索引 {index}"

        except OSError as e:
            error_msg = f"挂载镜像时发生错误: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg

    def unmount_image(self, mount_dir: Path, commit: bool = True) -> Tuple[bool, str]:
        """卸载镜像

        Args:
            mount_dir: 挂载目录
            commit: True 提交更改，False 放弃更改

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        try:
            mount_dir = Path(mount_dir)
            action = "提交更改并" if commit else "放弃更改并"

            if not mount_dir.exists():
                logger.info("挂载目录不存在，无需卸载")
                return True, "挂载目录不存在，无需卸载"

            if not self.is_mounted(mount_dir):
                logger.info("挂载目录为空，直接删除")
                mount_dir.rmdir()
                return True, "挂载目录为空，已清理"

            logger.info(f"准备{action}卸载: {mount_dir}")
            success, message = self.engine.unmount(mount_dir, commit=commit)

            if not success:
                # 文件可能被短暂锁定，等待后重试一次
                logger.warning(f"卸载失败: {message}")
                logger.info(f"等待{self.retry_delay:.0f}秒后重试卸载...")
                time.sleep(self.retry_delay)
                success, message = self.engine.unmount(mount_dir, commit=commit)

            if not success:
                logger.info("尝试重新挂载后卸载...")
                remount_ok, _ = self.engine.remount(mount_dir)
                if remount_ok:
                    success, message = self.engine.unmount(mount_dir, commit=commit)

            if not success:
                logger.error(f"镜像{action}卸载失败: {message}")
                return False, f"镜像{action}卸载失败: {message}"

            if mount_dir.exists() and not self.is_mounted(mount_dir):
                mount_dir.rmdir()
                logger.info("挂载目录已清理")

            logger.info(f"镜像{action}卸载成功")
            return True, f"镜像{action}卸载成功"

        except OSError as e:
            error_msg = f"卸载镜像时发生错误: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg

    def remount_image(self, image_path: Path, index: int, mount_dir: Path) -> Tuple[bool, str]:
        """卸载（提交）后重新挂载，使之前的更改落盘"""
        success, message = self.unmount_image(mount_dir, commit=True)
        if not success:
            return False, message
        return self.mount_image(image_path, index, mount_dir)

    def is_mounted(self, mount_dir: Path) -> bool:
        """检查挂载目录是否有内容"""
        try:
            mount_dir = Path(mount_dir)
            return mount_dir.is_dir() and any(mount_dir.iterdir())
        except OSError as e:
            logger.error(f"检查挂载状态时发生错误: {str(e)}")
            return False

    def discard_quietly(self, mount_dir: Path) -> bool:
        """放弃挂载的更改，失败时清理挂载点并删除目录"""
        mount_dir = Path(mount_dir)
        if not self.is_mounted(mount_dir):
            return True

        success, message = self.engine.unmount(mount_dir, commit=False)
        if success:
            if mount_dir.exists() and not self.is_mounted(mount_dir):
                mount_dir.rmdir()
            logger.info("已放弃挂载的更改")
            return True

        logger.warning(f"放弃挂载失败: {message}，尝试清理挂载点")
        self.engine.cleanup_mountpoints()
        shutil.rmtree(mount_dir, ignore_errors=True)
        return not mount_dir.exists()
