#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
启动镜像服务管理程序主入口
不带参数时启动图形界面，带子命令时在命令行中执行对应操作
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# 添加项目根目录到Python路径
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from core.adk_manager import ADKManager
from core.config_manager import ConfigManager
from core.servicing import DismEngine, MountManager, PackageManager, ImageManager
from core.configmgr import ConfigMgrClient
from core.workflow import build_boot_image_workflow, register_boot_image_workflow
from utils.logger import setup_logger, get_logger

logger = get_logger()


def create_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog="bootimage-manager",
        description="启动镜像服务管理器: 挂载、服务、导出WIM镜像并注册到Configuration Manager"
    )
    parser.add_argument("--config", type=Path, help="配置文件路径")
    parser.add_argument("--log-file", type=Path, help="日志文件路径 (默认 logs/run.log)")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("build", help="按配置执行完整的启动镜像构建流程")
    sub.add_parser("register", help="把启动镜像注册到Configuration Manager")

    p = sub.add_parser("mount", help="挂载镜像")
    p.add_argument("image", type=Path)
    p.add_argument("mount_dir", type=Path)
    p.add_argument("--index", type=int, default=1)

    p = sub.add_parser("unmount", help="卸载镜像")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("--discard", action="store_true", help="放弃更改")

    p = sub.add_parser("add-package", help="添加包或更新")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("package", type=Path)

    p = sub.add_parser("add-components", help="添加WinPE可选组件及语言包")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("components", nargs="+")
    p.add_argument("--arch", default=None)
    p.add_argument("--language", default=None)

    p = sub.add_parser("add-driver", help="添加驱动文件或目录")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("drivers", nargs="+")
    p.add_argument("--force-unsigned", action="store_true")

    p = sub.add_parser("remove-drivers", help="按目录中的 .inf 文件移除驱动")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("driver_folder", type=Path)

    p = sub.add_parser("enable-feature", help="启用可选功能")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("features", nargs="+")
    p.add_argument("--source", type=Path)

    p = sub.add_parser("disable-feature", help="禁用可选功能")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("features", nargs="+")

    p = sub.add_parser("cleanup", help="清理组件存储")
    p.add_argument("mount_dir", type=Path)
    p.add_argument("--no-reset-base", action="store_true")

    p = sub.add_parser("export", help="导出镜像中的一个卷")
    p.add_argument("source", type=Path)
    p.add_argument("--index", type=int, default=1)
    p.add_argument("--destination", type=Path, help="留空则原地导出")
    p.add_argument("--compress", default="max", choices=["none", "fast", "max", "recovery"])

    p = sub.add_parser("split", help="把镜像拆分为 .swm 分卷")
    p.add_argument("image", type=Path)
    p.add_argument("--size", type=int, default=3800, help="分卷大小 (MB)")
    p.add_argument("--output-dir", type=Path)
    p.add_argument("--keep-source", action="store_true")

    p = sub.add_parser("info", help="打印镜像信息")
    p.add_argument("kind", choices=["image", "packages", "drivers", "features", "mounted"])
    p.add_argument("target", type=Path, nargs="?", default=Path("."))
    p.add_argument("--index", type=int)

    p = sub.add_parser("cm-show", help="显示Configuration Manager中的启动镜像记录")
    p.add_argument("name", nargs="?")

    p = sub.add_parser("cm-delete", help="删除Configuration Manager中的启动镜像记录")
    p.add_argument("name")

    return parser


def run_command(args, config_manager: ConfigManager) -> bool:
    """执行单个子命令，返回是否成功"""
    adk_manager = ADKManager(
        install_path=config_manager.get("adk.install_path") or None,
        timeout=config_manager.get("dism.timeout")
    )

    if args.command == "build":
        result = build_boot_image_workflow(config_manager, adk_manager).run()
        print(result.message)
        return result.success

    if args.command == "register":
        result = register_boot_image_workflow(config_manager).run()
        print(result.message)
        return result.success

    if args.command in ("cm-show", "cm-delete"):
        client = ConfigMgrClient.from_config(config_manager)
        if args.command == "cm-delete":
            success, message = client.delete_boot_image(args.name)
            print(message)
            return success
        if args.name:
            success, record = client.get_boot_image(args.name)
            if not success:
                print(record)
                return False
            records = [record] if record else []
        else:
            records = client.list_boot_images()
        for record in records:
            print(f"{record.get('PackageID', '')}\t{record.get('Name', '')}\t{record.get('ImagePath', '')}")
        return bool(records)

    adk_manager.detect_adk()
    adk_manager.detect_winpe_addon()
    engine = DismEngine(adk_manager)
    mount = MountManager(engine)
    packages = PackageManager(engine)
    images = ImageManager(engine)

    if args.command == "mount":
        success, message = mount.mount_image(args.image, args.index, args.mount_dir)
    elif args.command == "unmount":
        success, message = mount.unmount_image(args.mount_dir, commit=not args.discard)
    elif args.command == "add-package":
        success, message = packages.add_package(args.mount_dir, args.package)
    elif args.command == "add-components":
        architecture = args.arch or config_manager.get("winpe.architecture", "amd64")
        language = args.language or config_manager.get("winpe.language", "en-us")
        oc_path = adk_manager.get_winpe_oc_path(architecture)
        if not oc_path:
            success, message = False, "找不到WinPE可选组件目录"
        else:
            success, message, _ = packages.add_components(args.mount_dir, args.components, oc_path, language)
    elif args.command == "add-driver":
        success, message = packages.add_drivers(args.mount_dir, args.drivers, args.force_unsigned)
    elif args.command == "remove-drivers":
        success, message = packages.remove_drivers(args.mount_dir, args.driver_folder)
    elif args.command == "enable-feature":
        success, message = packages.enable_features(args.mount_dir, args.features, args.source)
    elif args.command == "disable-feature":
        success, message = packages.disable_features(args.mount_dir, args.features)
    elif args.command == "cleanup":
        success, message = images.cleanup_image(args.mount_dir, reset_base=not args.no_reset_base)
    elif args.command == "export":
        success, message = images.export_image(args.source, args.index, args.destination, args.compress)
    elif args.command == "split":
        success, message = images.split_image(args.image, args.size, args.output_dir,
                                              delete_source=not args.keep_source)
    elif args.command == "info":
        success, _ = images.report(args.kind, args.target, args.index)
        return success
    else:
        success, message = False, f"未知命令: {args.command}"

    print(message)
    return success


def launch_gui(config_manager: ConfigManager) -> int:
    """启动图形界面"""
    from PyQt5.QtWidgets import QApplication
    from ui.main_window import MainWindow

    app = QApplication(sys.argv)
    app.setApplicationName("启动镜像服务管理器")
    app.setOrganizationName("BootImageManager")

    main_window = MainWindow(config_manager)
    main_window.show()
    return app.exec_()


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    args = create_parser().parse_args(argv)

    setup_logger(log_file_path=args.log_file)
    config_manager = ConfigManager(args.config)

    try:
        if not args.command:
            return launch_gui(config_manager)
        return 0 if run_command(args, config_manager) else 1
    except KeyboardInterrupt:
        logger.warning("操作被用户中断")
        return 1


if __name__ == "__main__":
    sys.exit(main())
