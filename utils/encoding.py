#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
编码处理工具
DISM 及报告程序的输出按控制台代码页编码，这里统一解码
"""

import locale


def safe_decode(data: bytes, fallback_encoding: str = 'gbk') -> str:
    """
    安全解码字节数据

    Args:
        data: 要解码的字节数据
        fallback_encoding: 备用编码，默认为gbk

    Returns:
        str: 解码后的字符串
    """
    if not data:
        return ""

    # DISM 在部分语言环境下输出 UTF-16LE
    if data[:2] == b'\xff\xfe':
        return data[2:].decode('utf-16-le', errors='replace')

    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        pass

    system_encoding = get_system_encoding()
    if system_encoding.lower().replace('-', '') != 'utf8':
        try:
            return data.decode(system_encoding, errors='replace')
        except LookupError:
            pass

    try:
        return data.decode(fallback_encoding, errors='replace')
    except LookupError:
        pass

    # latin-1 不会失败
    return data.decode('latin-1', errors='replace')


def get_system_encoding() -> str:
    """
    获取系统编码

    Returns:
        str: 系统编码名称
    """
    return locale.getpreferredencoding() or 'utf-8'
