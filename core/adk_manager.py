#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Windows ADK管理模块
负责检测Windows ADK环境，并执行DISM及其它外部命令
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Dict, Tuple, Optional, Union
import logging

from utils.encoding import safe_decode
from utils.logger import log_command

logger = logging.getLogger("BootImageManager")

WINPE_SUBDIR = Path("Assessment and Deployment Kit") / "Windows Preinstallation Environment"
DEPLOYMENT_TOOLS_SUBDIR = Path("Assessment and Deployment Kit") / "Deployment Tools"


class ADKManager:
    """Windows ADK管理器类"""

    # 注册表路径
    ADK_REGISTRY_PATHS = [
        r"SOFTWARE\Microsoft\Windows Kits\Installed Roots",
        r"SOFTWARE\WOW6432Node\Microsoft\Windows Kits\Installed Roots"
    ]

    # 常见的ADK安装路径
    COMMON_ADK_PATHS = [
        r"C:\Program Files (x86)\Windows Kits\10",
        r"C:\Program Files\Windows Kits\10",
        r"C:\Program Files (x86)\Windows Kits\11",
        r"C:\Program Files\Windows Kits\11"
    ]

    ARCHITECTURES = ["x86", "amd64", "arm64"]

    def __init__(self, install_path: Optional[Union[str, Path]] = None, timeout: Optional[int] = None):
        self.install_path = Path(install_path) if install_path else None
        self.timeout = timeout
        self.adk_path = None
        self.winpe_path = None
        self.winpe_versions = {}
        self.command_callback = None  # 命令输出回调函数

    def set_command_callback(self, callback):
        """设置命令输出回调函数

        Args:
            callback: 回调函数，接收(command: str, output: str)参数
        """
        self.command_callback = callback

    def _emit_command_output(self, command: str, output: str):
        if self.command_callback:
            self.command_callback(command, output)

    def detect_adk(self) -> Tuple[bool, str]:
        """检测Windows ADK安装情况

        Returns:
            Tuple[bool, str]: (是否安装, 路径或错误信息)
        """
        candidates = []
        if self.install_path:
            candidates.append(self.install_path)
        registry_path = self._find_adk_from_registry()
        if registry_path:
            candidates.append(registry_path)
        candidates.extend(Path(p) for p in self.COMMON_ADK_PATHS)

        for candidate in candidates:
            if (candidate / "Assessment and Deployment Kit").exists():
                self.adk_path = candidate
                logger.info(f"找到Windows ADK: {candidate}")
                return True, f"Windows ADK 已安装: {candidate}"

        return False, "未找到Windows ADK安装"

    def detect_winpe_addon(self) -> Tuple[bool, str]:
        """检测WinPE加载项安装情况

        Returns:
            Tuple[bool, str]: (是否安装, 支持的架构或错误信息)
        """
        if not self.adk_path:
            return False, "请先安装Windows ADK"

        winpe_path = self.adk_path / WINPE_SUBDIR
        if not winpe_path.exists():
            return False, "WinPE加载项未安装"

        self.winpe_path = winpe_path
        self.winpe_versions = {}
        for arch in self.ARCHITECTURES:
            arch_path = winpe_path / arch
            if arch_path.exists():
                wim = arch_path / "en-us" / "winpe.wim"
                self.winpe_versions[arch] = "已安装" if wim.exists() else "未完整安装"

        logger.info(f"找到WinPE加载项: {winpe_path}")
        return True, f"WinPE加载项已安装，支持架构: {list(self.winpe_versions.keys())}"

    def _find_adk_from_registry(self) -> Optional[Path]:
        """从注册表查找ADK安装路径"""
        try:
            import winreg
        except ImportError:
            return None

        for reg_path in self.ADK_REGISTRY_PATHS:
            try:
                with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, reg_path) as key:
                    kits_root = winreg.QueryValueEx(key, "KitsRoot10")[0]
                    return Path(kits_root)
            except OSError:
                continue
        return None

    def verify_prerequisites(self) -> Tuple[bool, str]:
        """验证服务流程的前置条件：ADK、WinPE加载项、DISM

        Returns:
            Tuple[bool, str]: (成功状态, 消息)
        """
        adk_ok, adk_msg = self.detect_adk()
        if not adk_ok:
            logger.error(adk_msg)
            return False, adk_msg

        winpe_ok, winpe_msg = self.detect_winpe_addon()
        if not winpe_ok:
            logger.error(winpe_msg)
            return False, winpe_msg

        dism_path = self.get_dism_path()
        if not dism_path:
            return False, "找不到DISM工具"

        if not self.check_admin_privileges():
            logger.warning("当前进程没有管理员权限，DISM挂载操作可能失败")

        return True, f"前置条件检查通过 (DISM: {dism_path})"

    def get_deployment_tools_path(self) -> Optional[Path]:
        """获取部署工具路径"""
        if not self.adk_path:
            return None

        deploy_tools_path = self.adk_path / DEPLOYMENT_TOOLS_SUBDIR
        if deploy_tools_path.exists():
            return deploy_tools_path
        return None

    def get_dism_path(self) -> Optional[Path]:
        """获取DISM工具路径，优先使用ADK自带版本"""
        deploy_tools_path = self.get_deployment_tools_path()
        if deploy_tools_path:
            for arch in ("amd64", "x86", "arm64"):
                dism_path = deploy_tools_path / arch / "DISM" / "dism.exe"
                if dism_path.exists():
                    return dism_path

        system_dism = shutil.which("dism.exe") or shutil.which("dism")
        if system_dism:
            return Path(system_dism)

        system_root = os.environ.get("SystemRoot")
        if system_root:
            dism_path = Path(system_root) / "System32" / "dism.exe"
            if dism_path.exists():
                return dism_path

        return None

    def get_winpe_oc_path(self, architecture: str = "amd64") -> Optional[Path]:
        """获取WinPE可选组件目录 (WinPE_OCs)"""
        if not self.winpe_path:
            return None
        return self.winpe_path / architecture / "WinPE_OCs"

    def get_winpe_wim_path(self, architecture: str = "amd64") -> Optional[Path]:
        """获取ADK中的参考 winpe.wim"""
        if not self.winpe_path:
            return None
        return self.winpe_path / architecture / "en-us" / "winpe.wim"

    def check_admin_privileges(self) -> bool:
        """检查是否具有管理员权限"""
        try:
            import ctypes
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (ImportError, AttributeError, OSError):
            return False

    def get_adk_install_status(self) -> Dict[str, object]:
        """获取ADK完整安装状态"""
        adk_installed, adk_message = self.detect_adk()
        winpe_installed, winpe_message = self.detect_winpe_addon()
        dism_path = self.get_dism_path()

        return {
            "adk_installed": adk_installed,
            "adk_message": adk_message,
            "winpe_installed": winpe_installed,
            "winpe_message": winpe_message,
            "adk_path": str(self.adk_path) if self.adk_path else "",
            "winpe_path": str(self.winpe_path) if self.winpe_path else "",
            "architectures": list(self.winpe_versions.keys()),
            "dism_path": str(dism_path) if dism_path else "",
            "has_admin": self.check_admin_privileges()
        }

    def run_dism_command(self, args: List[str]) -> Tuple[bool, str, str]:
        """运行DISM命令

        Args:
            args: DISM命令参数

        Returns:
            Tuple[bool, str, str]: (成功状态, 标准输出, 错误输出)
        """
        dism_path = self.get_dism_path()
        if not dism_path:
            return False, "", "找不到DISM工具"

        cmd = [str(dism_path)] + [str(arg) for arg in args]
        success, stdout, stderr = self.run_command(cmd, description="DISM")

        if not success:
            # DISM 把大部分错误写到标准输出
            if not stderr and stdout.strip():
                stderr = stdout.strip().splitlines()[-1]
            if "Error: 87" in stdout or "错误: 87" in stdout:
                logger.error("DISM错误87: 通常是命令参数格式错误")
            elif "Error: 740" in stdout or "错误: 740" in stdout:
                logger.error("DISM错误740: 需要管理员权限")

        return success, stdout, stderr

    def run_command(self, cmd: List[str], description: str = "") -> Tuple[bool, str, str]:
        """运行外部程序并捕获输出

        Args:
            cmd: 完整命令（程序路径加参数）
            description: 日志中的命令描述

        Returns:
            Tuple[bool, str, str]: (成功状态, 标准输出, 错误输出)
        """
        command_str = ' '.join(cmd)
        log_command(command_str, description)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=False,
                timeout=self.timeout,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0)
            )
        except subprocess.TimeoutExpired:
            error_msg = f"命令执行超时 ({self.timeout}秒): {command_str}"
            logger.error(error_msg)
            return False, "", error_msg
        except OSError as e:
            error_msg = f"无法启动命令 {cmd[0]}: {str(e)}"
            logger.error(error_msg)
            return False, "", error_msg

        stdout = safe_decode(result.stdout) if result.stdout else ""
        stderr = safe_decode(result.stderr) if result.stderr else ""
        success = result.returncode == 0

        logger.info(f"命令执行完成，返回码: {result.returncode}")
        if success:
            if stdout:
                logger.debug(f"标准输出: {stdout[:200]}...")
        else:
            logger.error(f"命令执行失败，返回码: {result.returncode}")
            if stderr:
                logger.error(f"错误输出: {stderr[:200]}...")
            if stdout:
                logger.debug(f"标准输出: {stdout[:200]}...")

        self._emit_command_output(command_str, stdout or stderr)
        return success, stdout, stderr
