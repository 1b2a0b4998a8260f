"""
文件操作工具函数
处理Windows文件系统特殊情况，如只读属性、文件锁定等
"""

import os
import stat
import time
from pathlib import Path
from typing import List, Union


def force_remove_file(file_path: Union[str, Path], max_retries: int = 3, delay: float = 1.0) -> bool:
    """
    强制删除文件，处理Windows文件锁定问题

    Args:
        file_path: 要删除的文件路径
        max_retries: 最大重试次数
        delay: 重试间隔（秒）

    Returns:
        bool: 是否成功删除

    Raises:
        OSError: 删除失败时的最后一个异常
    """
    for attempt in range(max_retries):
        try:
            os.remove(file_path)
            return True

        except FileNotFoundError:
            return True

        except PermissionError as e:
            if attempt == max_retries - 1:
                # 最后一次尝试，移除只读属性后再删除
                try:
                    clear_readonly(file_path)
                    os.remove(file_path)
                    return True
                except OSError:
                    raise e
            else:
                time.sleep(delay)

    return False


def clear_readonly(file_path: Union[str, Path]):
    """移除文件的只读属性（ADK中复制出的winpe.wim默认只读）"""
    mode = os.stat(file_path).st_mode
    if not mode & stat.S_IWRITE:
        os.chmod(file_path, mode | stat.S_IWRITE)


def find_files(directory: Union[str, Path], suffix: str) -> List[Path]:
    """
    递归查找指定后缀的文件，后缀比较不区分大小写

    Args:
        directory: 查找目录
        suffix: 文件后缀，如 ".inf"

    Returns:
        List[Path]: 排序后的文件列表
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    suffix = suffix.lower()
    matches = []
    for root, _, files in os.walk(directory):
        for name in files:
            if name.lower().endswith(suffix):
                matches.append(Path(root) / name)
    return sorted(matches)


def format_size(size_bytes: int) -> str:
    """格式化文件大小"""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    size = size_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
