#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
镜像文件管理模块
负责组件清理、导出、拆分、信息报告以及参考镜像的复制
"""

import os
import re
import shutil
from pathlib import Path
from typing import List, Optional, Tuple
import logging

from utils.file_utils import clear_readonly, force_remove_file, format_size

logger = logging.getLogger("BootImageManager")


class ImageManager:
    """镜像文件管理器"""

    def __init__(self, engine):
        self.engine = engine

    def cleanup_image(self, mount_dir: Path, reset_base: bool = True) -> Tuple[bool, str]:
        """清理已挂载镜像中被替代的组件

        Args:
            mount_dir: 挂载目录
            reset_base: 是否同时重置基线 (/ResetBase)

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        mount_dir = Path(mount_dir)
        if not mount_dir.is_dir() or not any(mount_dir.iterdir()):
            return False, f"镜像未挂载: {mount_dir}"

        logger.info(f"开始清理组件存储: {mount_dir}")
        success, message = self.engine.cleanup(mount_dir, reset_base=reset_base)
        if success:
            logger.info("组件存储清理完成")
        else:
            logger.error(message)
        return success, message

    @staticmethod
    def temp_export_path(destination: Path) -> Path:
        """导出时使用的临时文件，与目标位于同一目录"""
        return destination.with_name(f"{destination.stem}.export-tmp{destination.suffix}")

    def export_image(self, source: Path, index: int = 1, destination: Optional[Path] = None,
                     compress: str = "max") -> Tuple[bool, str]:
        """导出镜像中的一个卷为独立的镜像文件

        先导出到目标旁边的临时文件，确认文件存在且非空后再替换目标。
        源文件在整个过程中不会被改名，失败时保持原样。

        Args:
            source: 源镜像文件
            index: 源卷索引
            destination: 目标文件，None 表示原地导出
            compress: 压缩类型

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        source = Path(source)
        destination = Path(destination) if destination else source

        if not source.is_file():
            logger.error(f"源镜像不存在: {source}")
            return False, f"源镜像不存在: {source}"

        temp_path = self.temp_export_path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if temp_path.exists():
                logger.warning(f"删除上次遗留的临时导出文件: {temp_path}")
                force_remove_file(temp_path)

            source_size = source.stat().st_size
            logger.info(f"导出镜像: {source} 索引 {index} -> {destination}")

            success, message = self.engine.export(source, index, temp_path, compress)

            if not success:
                logger.error(message)
                self._discard_temp(temp_path)
                return False, message

            if not temp_path.is_file() or temp_path.stat().st_size == 0:
                logger.error(f"导出命令完成但临时文件无效: {temp_path}")
                self._discard_temp(temp_path)
                return False, "导出失败: 未生成有效的镜像文件"

            os.replace(temp_path, destination)

            new_size = destination.stat().st_size
            logger.info(f"镜像导出成功: {format_size(source_size)} -> {format_size(new_size)}")
            return True, f"镜像导出成功: {destination}"

        except OSError as e:
            self._discard_temp(temp_path)
            error_msg = f"导出镜像时发生错误: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg

    def _discard_temp(self, temp_path: Path):
        try:
            force_remove_file(temp_path)
        except OSError as e:
            logger.warning(f"删除临时导出文件失败: {temp_path} ({e})")

    @staticmethod
    def find_fragments(directory: Path, stem: str) -> List[Path]:
        """查找拆分生成的 .swm 文件，如 boot.swm, boot2.swm ...

        只匹配 <stem>.swm 和 <stem><数字>.swm，其它镜像的分卷 (如 bootx86.swm) 不计入。
        """
        pattern = re.compile(rf"{re.escape(stem)}\d*\.swm", re.IGNORECASE)
        return sorted(p for p in Path(directory).glob("*.swm") if pattern.fullmatch(p.name))

    def split_image(self, image: Path, file_size_mb: int = 3800, destination_dir: Optional[Path] = None,
                    delete_source: bool = True) -> Tuple[bool, str]:
        """按大小把镜像拆分为多个 .swm 文件

        只有在目标目录中确实生成了分卷文件后才删除源镜像。

        Args:
            image: 源镜像文件
            file_size_mb: 单个分卷的最大大小 (MB)
            destination_dir: 分卷输出目录，默认与源镜像相同
            delete_source: 拆分成功后是否删除源镜像

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        image = Path(image)
        if not image.is_file():
            return False, f"镜像文件不存在: {image}"
        if file_size_mb < 1:
            return False, f"无效的分卷大小: {file_size_mb} MB"

        output_dir = Path(destination_dir) if destination_dir else image.parent
        swm_file = output_dir / f"{image.stem}.swm"

        try:
            output_dir.mkdir(parents=True, exist_ok=True)

            # 清除旧的分卷，避免把它们当成本次的结果
            for stale in self.find_fragments(output_dir, image.stem):
                logger.warning(f"删除旧分卷: {stale}")
                force_remove_file(stale)

            logger.info(f"拆分镜像: {image} ({format_size(image.stat().st_size)}), 分卷大小 {file_size_mb} MB")
            success, message = self.engine.split(image, swm_file, file_size_mb)
            if not success:
                logger.error(message)
                return False, message

            fragments = self.find_fragments(output_dir, image.stem)
            if not fragments:
                logger.error("拆分命令完成但没有找到分卷文件，保留源镜像")
                return False, "拆分失败: 未生成分卷文件"

            for fragment in fragments:
                logger.info(f"  - {fragment.name} ({format_size(fragment.stat().st_size)})")

            if delete_source:
                force_remove_file(image)
                logger.info(f"已删除源镜像: {image}")

            return True, f"拆分完成，生成 {len(fragments)} 个分卷"

        except OSError as e:
            error_msg = f"拆分镜像时发生错误: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg

    def report(self, kind: str, target: Path, index: Optional[int] = None) -> Tuple[bool, str]:
        """运行查询命令并把原始输出打印到控制台

        Args:
            kind: image / packages / drivers / features / mounted
            target: 镜像文件（image）或挂载目录
            index: 镜像索引（仅 image）

        Returns:
            Tuple[bool, str]: (成功状态, 原始输出)
        """
        success, output = self.engine.query(kind, Path(target), index)
        print(output)
        if not success:
            logger.error(f"查询失败: {kind} {target}")
        return success, output

    def copy_reference_image(self, source: Path, destination: Path) -> Tuple[bool, str]:
        """把工具包中的参考镜像复制到工作目录

        Args:
            source: 参考镜像，如 ADK 中的 winpe.wim
            destination: 工作目录中的目标文件

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        source = Path(source)
        destination = Path(destination)
        if not source.is_file():
            logger.error(f"参考镜像不存在: {source}")
            return False, f"参考镜像不存在: {source}"

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                logger.warning(f"覆盖已有镜像: {destination}")
                force_remove_file(destination)
            shutil.copy2(source, destination)
            clear_readonly(destination)
            logger.info(f"参考镜像已复制: {source} -> {destination}")
            return True, f"参考镜像已复制到 {destination}"
        except OSError as e:
            error_msg = f"复制参考镜像失败: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg
