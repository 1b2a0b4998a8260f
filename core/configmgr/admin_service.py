#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Manager AdminService 客户端
负责启动镜像记录 (SMS_BootImagePackage) 的创建、查询、删除和内容刷新
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import requests

logger = logging.getLogger("BootImageManager")

BOOT_IMAGE_CLASS = "SMS_BootImagePackage"


class ConfigMgrClient:
    """Configuration Manager AdminService 客户端"""

    def __init__(self, provider: str, auth=None, verify_ssl: bool = True, timeout: int = 60,
                 session: Optional[requests.Session] = None):
        """
        Args:
            provider: SMS Provider 主机名
            auth: requests 认证对象或 (用户名, 密码)
            verify_ssl: 是否校验证书
            timeout: 请求超时（秒）
            session: 可选的 requests.Session
        """
        self.base_url = f"https://{provider}/AdminService/wmi"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify_ssl
        if auth:
            self.session.auth = auth
        self.session.headers.update({"Accept": "application/json"})

    @classmethod
    def from_config(cls, config_manager) -> "ConfigMgrClient":
        """根据配置创建客户端"""
        username = config_manager.get("configmgr.username")
        password = config_manager.get("configmgr.password")
        auth = (username, password) if username else None
        return cls(
            provider=config_manager.get("configmgr.provider"),
            auth=auth,
            verify_ssl=config_manager.get("configmgr.verify_ssl", True)
        )

    def _request(self, method: str, path: str, **kwargs) -> Tuple[bool, Any]:
        """发送请求，返回 (成功状态, JSON 数据或错误消息)"""
        url = f"{self.base_url}/{path}"
        logger.info(f"AdminService 请求: {method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            error_msg = f"连接 AdminService 失败: {str(e)}"
            logger.error(error_msg)
            return False, error_msg

        if not response.ok:
            error_msg = f"AdminService 返回错误 {response.status_code}: {response.text[:200]}"
            logger.error(error_msg)
            return False, error_msg

        if not response.content:
            return True, {}
        try:
            return True, response.json()
        except ValueError:
            return True, {}

    def get_boot_image(self, name: str) -> Tuple[bool, Any]:
        """按名称查询启动镜像记录

        Returns:
            Tuple[bool, Any]: 查询成功时为 (True, 记录或 None)，
            请求失败时为 (False, 错误消息)
        """
        escaped = name.replace("'", "''")
        success, data = self._request("GET", BOOT_IMAGE_CLASS, params={"$filter": f"Name eq '{escaped}'"})
        if not success:
            return False, data

        records = data.get("value", [])
        if not records:
            logger.info(f"未找到启动镜像记录: {name}")
            return True, None
        if len(records) > 1:
            logger.warning(f"找到 {len(records)} 个同名启动镜像记录，使用第一个: {name}")
        return True, records[0]

    def _require_boot_image(self, name: str) -> Tuple[bool, Any]:
        """查询必须存在的记录，返回 (True, 记录) 或 (False, 错误消息)"""
        success, record = self.get_boot_image(name)
        if not success:
            return False, record
        if not record:
            return False, f"启动镜像记录不存在: {name}"
        return True, record

    def list_boot_images(self) -> List[Dict[str, Any]]:
        """列出全部启动镜像记录"""
        success, data = self._request("GET", BOOT_IMAGE_CLASS, params={"$select": "PackageID,Name,ImagePath"})
        if not success:
            return []
        return data.get("value", [])

    def create_boot_image(self, name: str, image_path: str, index: int = 1,
                          description: str = "") -> Tuple[bool, str]:
        """创建启动镜像记录

        Args:
            name: 记录名称
            image_path: 站点服务器可访问的 UNC 路径
            index: 镜像索引
            description: 描述

        Returns:
            Tuple[bool, str]: (成功状态, PackageID 或错误消息)
        """
        if not image_path.startswith("\\\\"):
            return False, f"镜像路径必须是 UNC 路径: {image_path}"

        found, existing = self.get_boot_image(name)
        if not found:
            return False, existing
        if existing:
            return False, f"启动镜像记录已存在: {name}"

        body = {
            "Name": name,
            "Description": description,
            "ImagePath": image_path,
            "ImageIndex": index,
            "PkgSourcePath": image_path
        }
        success, data = self._request("POST", BOOT_IMAGE_CLASS, json=body)
        if not success:
            return False, data

        package_id = data.get("PackageID", "")
        logger.info(f"启动镜像记录已创建: {name} ({package_id})")
        return True, package_id

    def delete_boot_image(self, name: str) -> Tuple[bool, str]:
        """按名称删除启动镜像记录"""
        found, record = self._require_boot_image(name)
        if not found:
            return False, record

        package_id = record["PackageID"]
        success, data = self._request("DELETE", f"{BOOT_IMAGE_CLASS}('{package_id}')")
        if not success:
            return False, data

        logger.info(f"启动镜像记录已删除: {name} ({package_id})")
        return True, f"已删除 {name} ({package_id})"

    def refresh_boot_image(self, name: str) -> Tuple[bool, str]:
        """通知站点重新读取镜像源文件并更新分发点"""
        found, record = self._require_boot_image(name)
        if not found:
            return False, record

        package_id = record["PackageID"]
        success, data = self._request(
            "POST", f"{BOOT_IMAGE_CLASS}('{package_id}')/AdminService.RefreshPkgSource", json={}
        )
        if not success:
            return False, data

        logger.info(f"已请求刷新启动镜像内容: {name} ({package_id})")
        return True, f"已刷新 {name} ({package_id})"


def write_status_report(report_path: Path, lines: List[str], title: str = "") -> Tuple[bool, str]:
    """追加一段带时间戳的文本报告

    Args:
        report_path: 报告文件
        lines: 报告内容
        title: 段落标题

    Returns:
        Tuple[bool, str]: (成功状态, 消息)
    """
    report_path = Path(report_path)
    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with open(report_path, "a", encoding="utf-8") as f:
            f.write(f"=== {title or '状态报告'} [{timestamp}] ===\n")
            for line in lines:
                f.write(f"{line}\n")
            f.write("\n")
        logger.info(f"状态报告已写入: {report_path}")
        return True, f"状态报告已写入: {report_path}"
    except OSError as e:
        error_msg = f"写入状态报告失败: {str(e)}"
        logger.error(error_msg)
        return False, error_msg
