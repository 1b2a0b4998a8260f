#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
服务流程模块
把镜像服务和Configuration Manager注册组织成按顺序执行的步骤列表，
任一步骤失败即停止，并放弃仍处于挂载状态的镜像
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple
import logging

from core.servicing import DismEngine, MountManager, PackageManager, ImageManager
from core.configmgr import ConfigMgrClient, write_status_report
from utils.logger import log_build_step, log_error

logger = logging.getLogger("BootImageManager")

StepAction = Callable[[], Tuple[bool, str]]


@dataclass
class WorkflowStep:
    """流程中的一个步骤"""
    name: str
    action: StepAction


@dataclass
class WorkflowResult:
    """流程执行结果"""
    success: bool
    message: str
    completed_steps: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    records: List[Tuple[str, bool, str]] = field(default_factory=list)

    def report_lines(self) -> List[str]:
        lines = [f"[{'成功' if ok else '失败'}] {name}: {message}" for name, ok, message in self.records]
        lines.append(f"结果: {self.message}")
        return lines


class ServicingWorkflow:
    """顺序执行的服务流程"""

    def __init__(self, name: str, steps: List[WorkflowStep],
                 on_failure: Optional[Callable[[], object]] = None,
                 on_complete: Optional[Callable[[WorkflowResult], object]] = None):
        self.name = name
        self.steps = steps
        self.on_failure = on_failure
        self.on_complete = on_complete
        self.progress_callback = None  # (当前步骤序号, 总步骤数, 步骤名称)
        self.step_callback = None  # (步骤名称, 是否成功, 消息)，每个步骤结束时调用
        self.is_running = False

    def set_progress_callback(self, callback):
        self.progress_callback = callback

    def set_step_callback(self, callback):
        self.step_callback = callback

    def stop(self):
        """请求在当前步骤结束后停止"""
        self.is_running = False

    def run(self) -> WorkflowResult:
        """按顺序执行全部步骤，遇到第一个失败即停止"""
        self.is_running = True
        total = len(self.steps)
        result = WorkflowResult(success=True, message="")
        logger.info(f"=== 开始流程: {self.name} ({total} 个步骤) ===")

        for i, step in enumerate(self.steps, 1):
            if not self.is_running:
                result.success = False
                result.failed_step = step.name
                result.message = "流程已被用户停止"
                logger.warning(result.message)
                break

            if self.progress_callback:
                self.progress_callback(i, total, step.name)
            log_build_step(f"[{i}/{total}] {step.name}")

            try:
                ok, message = step.action()
            except Exception as e:
                log_error(e, step.name)
                ok, message = False, f"{step.name}时发生错误: {str(e)}"

            result.records.append((step.name, ok, message))
            if self.step_callback:
                self.step_callback(step.name, ok, message)
            if not ok:
                log_build_step(step.name, message, level="error")
                result.success = False
                result.failed_step = step.name
                result.message = f"步骤失败: {step.name} - {message}"
                break

            log_build_step(step.name, message)
            result.completed_steps.append(step.name)

        if result.success:
            result.message = f"流程完成: {self.name}"
            logger.info(f"=== {result.message} ===")
        else:
            logger.error(f"=== 流程中止: {self.name} ===")
            if self.on_failure:
                logger.info("执行失败补偿操作...")
                self.on_failure()

        self.is_running = False
        if self.on_complete:
            self.on_complete(result)
        return result


def build_boot_image_workflow(config_manager, adk_manager, engine=None) -> ServicingWorkflow:
    """构建启动镜像的服务流程

    检查前置条件 -> 复制参考镜像 -> 挂载 -> 添加组件/驱动/功能 -> 卸载 ->
    重新挂载 -> 安装更新 -> 卸载 -> 重新挂载 -> 清理 -> 卸载 -> 导出 (-> 拆分)
    """
    engine = engine or DismEngine(adk_manager)
    mount = MountManager(engine)
    packages = PackageManager(engine)
    images = ImageManager(engine)

    architecture = config_manager.get("winpe.architecture", "amd64")
    language = config_manager.get("winpe.language", "en-us")
    components = config_manager.get("winpe.components", [])
    image_path = config_manager.get_image_path()
    index = int(config_manager.get("image.index", 1))
    mount_dir = config_manager.get_mount_dir()
    drivers = config_manager.get("customization.drivers", [])
    features = config_manager.get("customization.features", [])
    feature_source = config_manager.get("customization.feature_source") or None
    update_package = config_manager.get("customization.update_package")
    reset_base = config_manager.get("dism.reset_base", True)

    def reference_image() -> Tuple[bool, str]:
        source = config_manager.get("image.source")
        source = Path(source) if source else adk_manager.get_winpe_wim_path(architecture)
        if not source:
            return False, "无法确定参考镜像路径"
        return images.copy_reference_image(source, image_path)

    def add_components() -> Tuple[bool, str]:
        oc_path = adk_manager.get_winpe_oc_path(architecture)
        if not oc_path:
            return False, "找不到WinPE可选组件目录"
        ok, message, _ = packages.add_components(mount_dir, components, oc_path, language)
        return ok, message

    def mount_step() -> WorkflowStep:
        return WorkflowStep("挂载镜像", lambda: mount.mount_image(image_path, index, mount_dir))

    def commit_step() -> WorkflowStep:
        return WorkflowStep("提交并卸载镜像", lambda: mount.unmount_image(mount_dir, commit=True))

    steps = [
        WorkflowStep("检查前置条件", adk_manager.verify_prerequisites),
        WorkflowStep("复制参考镜像", reference_image),
        mount_step(),
    ]
    if components:
        steps.append(WorkflowStep("添加可选组件", add_components))
    if drivers:
        steps.append(WorkflowStep("添加驱动", lambda: packages.add_drivers(mount_dir, drivers)))
    if features:
        steps.append(WorkflowStep(
            "启用可选功能", lambda: packages.enable_features(mount_dir, features, feature_source)
        ))
    steps.append(commit_step())

    if update_package:
        steps.extend([
            mount_step(),
            WorkflowStep("安装累积更新", lambda: packages.add_package(mount_dir, Path(update_package))),
            commit_step(),
        ])

    steps.extend([
        mount_step(),
        WorkflowStep("清理组件存储", lambda: images.cleanup_image(mount_dir, reset_base)),
        commit_step(),
    ])

    if config_manager.get("export.enabled", True):
        destination = config_manager.get("export.destination") or None
        compress = config_manager.get("export.compress", "max")
        steps.append(WorkflowStep(
            "导出镜像",
            lambda: images.export_image(image_path, index, Path(destination) if destination else None, compress)
        ))

        if config_manager.get("export.split", False):
            split_target = Path(destination) if destination else image_path
            steps.append(WorkflowStep(
                "拆分镜像",
                lambda: images.split_image(
                    split_target,
                    int(config_manager.get("export.split_size_mb", 3800)),
                    delete_source=config_manager.get("export.delete_after_split", True)
                )
            ))

    return ServicingWorkflow(
        "构建启动镜像",
        steps,
        on_failure=lambda: mount.discard_quietly(mount_dir)
    )


def register_boot_image_workflow(config_manager, client: Optional[ConfigMgrClient] = None) -> ServicingWorkflow:
    """把启动镜像注册到Configuration Manager的流程

    (删除同名记录) -> 创建记录 -> 刷新内容，结束时写入状态报告
    """
    client = client or ConfigMgrClient.from_config(config_manager)
    name = config_manager.get("configmgr.boot_image_name")
    image_path = config_manager.get("configmgr.image_path_unc")
    index = int(config_manager.get("configmgr.image_index", 1))
    description = config_manager.get("configmgr.description", "")
    report_path = Path(config_manager.get("configmgr.report_path", "logs/configmgr_report.txt"))

    def check_settings() -> Tuple[bool, str]:
        missing = [key for key, value in (
            ("configmgr.provider", config_manager.get("configmgr.provider")),
            ("configmgr.boot_image_name", name),
            ("configmgr.image_path_unc", image_path)
        ) if not value]
        if missing:
            return False, f"缺少配置: {', '.join(missing)}"
        return True, "配置检查通过"

    def remove_existing() -> Tuple[bool, str]:
        found, record = client.get_boot_image(name)
        if not found:
            return False, record
        if not record:
            return True, f"不存在同名记录: {name}"
        return client.delete_boot_image(name)

    def create() -> Tuple[bool, str]:
        ok, message = client.create_boot_image(name, image_path, index, description)
        return ok, f"已创建 {name} ({message})" if ok else message

    steps = [WorkflowStep("检查注册配置", check_settings)]
    if config_manager.get("configmgr.replace_existing", True):
        steps.append(WorkflowStep("删除同名启动镜像记录", remove_existing))
    steps.extend([
        WorkflowStep("创建启动镜像记录", create),
        WorkflowStep("刷新启动镜像内容", lambda: client.refresh_boot_image(name)),
    ])

    def on_complete(result: WorkflowResult):
        write_status_report(report_path, result.report_lines(), title=f"注册启动镜像 {name}")

    return ServicingWorkflow("注册启动镜像", steps, on_complete=on_complete)
