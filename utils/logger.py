#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
日志工具模块
提供统一的日志记录功能，支持运行日志和服务步骤日志
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "BootImageManager"

_initialized = False


def setup_logger(
    log_file_path: Optional[Path] = None,
    console: bool = True,
    level: int = logging.INFO,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3
) -> logging.Logger:
    """设置日志记录器

    Args:
        log_file_path: 日志文件路径，默认 logs/run.log
        console: 是否输出到控制台
        level: 处理器日志级别
        max_bytes: 单个日志文件大小上限
        backup_count: 保留的历史日志数量

    Returns:
        logging.Logger: 配置好的日志记录器
    """
    global _initialized

    logger = logging.getLogger(LOGGER_NAME)
    if _initialized:
        return logger

    if log_file_path is None:
        log_file_path = Path("logs") / "run.log"
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    logger.setLevel(logging.DEBUG)

    # 清除现有处理器
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    # 文件处理器 - 限制2M，轮转3份
    file_handler = RotatingFileHandler(
        log_file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        # 设置控制台输出编码
        if hasattr(sys.stdout, 'reconfigure'):
            try:
                sys.stdout.reconfigure(encoding='utf-8')
            except (AttributeError, ValueError):
                pass

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    _initialized = True
    logger.info("日志系统初始化完成")
    return logger


def log_command(command: str, description: str = ""):
    """记录执行的命令

    Args:
        command: 执行的命令
        description: 命令描述
    """
    logger = logging.getLogger(LOGGER_NAME)
    message = f"执行命令: {command}"
    if description:
        message += f" ({description})"
    logger.info(message)


def log_error(error: Exception, context: str = ""):
    """记录错误信息

    Args:
        error: 异常对象
        context: 错误上下文
    """
    logger = logging.getLogger(LOGGER_NAME)
    message = f"发生错误: {str(error)}"
    if context:
        message += f" (上下文: {context})"
    logger.error(message, exc_info=True)


def log_build_step(step_name: str, details: str = "", level: str = "info"):
    """记录服务步骤

    Args:
        step_name: 步骤名称
        details: 详细信息
        level: 日志级别 (info, warning, error)
    """
    logger = logging.getLogger(LOGGER_NAME)
    message = f"步骤: {step_name}"
    if details:
        message += f" - {details}"

    if level.lower() == "error":
        logger.error(message)
    elif level.lower() == "warning":
        logger.warning(message)
    else:
        logger.info(message)


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """获取日志记录器

    Args:
        name: 日志记录器名称

    Returns:
        logging.Logger: 日志记录器实例
    """
    return logging.getLogger(name)
