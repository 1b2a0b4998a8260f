#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
启动镜像服务管理器启动脚本
用于启动应用程序并进行必要的依赖检查
"""

import os
import subprocess
import sys
from pathlib import Path

REQUIRED_PACKAGES = {
    # 导入名: 安装名
    'PyQt5': 'PyQt5',
    'requests': 'requests',
}


def check_python_version():
    """检查Python版本"""
    if sys.version_info < (3, 8):
        print("错误: 需要Python 3.8或更高版本")
        print(f"当前版本: {sys.version}")
        return False
    return True


def find_missing_packages():
    """返回缺少的依赖包安装名"""
    missing_packages = []
    for module_name, package_name in REQUIRED_PACKAGES.items():
        try:
            __import__(module_name)
        except ImportError:
            missing_packages.append(package_name)
    return missing_packages


def install_dependencies(packages):
    """自动安装依赖包"""
    print("正在安装依赖包...")
    try:
        subprocess.check_call([sys.executable, "-m", "pip", "install", *packages])
        print("依赖包安装完成")
        return True
    except subprocess.CalledProcessError as e:
        print(f"安装依赖包失败: {e}")
        return False


def main():
    """主函数"""
    print("启动镜像服务管理器")
    print("=" * 50)

    if not check_python_version():
        return 1

    missing_packages = find_missing_packages()
    if missing_packages:
        print("错误: 缺少必要的依赖包:")
        for package in missing_packages:
            print(f"  - {package}")
        choice = input("是否自动安装依赖包? (y/n): ").lower().strip()
        if choice not in ['y', 'yes', '是'] or not install_dependencies(missing_packages):
            return 1

    # 设置当前工作目录
    project_root = Path(__file__).parent
    os.chdir(project_root)

    from main import main as app_main
    return app_main(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
