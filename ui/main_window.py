#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
主窗口模块
提供启动镜像服务管理器的配置表单、流程控制和日志显示
"""

import datetime
from pathlib import Path

from PyQt5.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QFormLayout, QGroupBox, QTabWidget,
    QLabel, QLineEdit, QPushButton, QComboBox, QSpinBox, QCheckBox, QListWidget,
    QListWidgetItem, QTextEdit, QProgressBar, QFileDialog, QMessageBox
)
from PyQt5.QtCore import Qt
from PyQt5.QtGui import QColor, QFont

from core.adk_manager import ADKManager
from core.config_manager import ConfigManager
from core.servicing import PackageManager, DismEngine
from core.workflow import build_boot_image_workflow, register_boot_image_workflow
from ui.servicing_thread import ServicingThread
from utils.logger import log_error


class MainWindow(QMainWindow):
    """主窗口类"""

    def __init__(self, config_manager: ConfigManager):
        super().__init__()
        self.config_manager = config_manager
        self.adk_manager = ADKManager(
            install_path=config_manager.get("adk.install_path") or None,
            timeout=config_manager.get("dism.timeout")
        )
        self.servicing_thread = None

        self.setWindowTitle("启动镜像服务管理器")
        self.setMinimumSize(1000, 760)

        self.init_ui()
        self.load_settings()
        self.check_adk_status()

    def init_ui(self):
        """初始化用户界面"""
        central_widget = QWidget()
        self.setCentralWidget(central_widget)

        main_layout = QVBoxLayout(central_widget)
        main_layout.setSpacing(10)
        main_layout.setContentsMargins(10, 10, 10, 10)

        title_label = QLabel("启动镜像服务管理器")
        title_label.setAlignment(Qt.AlignCenter)
        title_font = QFont()
        title_font.setPointSize(16)
        title_font.setBold(True)
        title_label.setFont(title_font)
        main_layout.addWidget(title_label)

        self.tab_widget = QTabWidget()
        self.tab_widget.addTab(self.create_image_tab(), "镜像")
        self.tab_widget.addTab(self.create_customization_tab(), "定制")
        self.tab_widget.addTab(self.create_configmgr_tab(), "Configuration Manager")
        main_layout.addWidget(self.tab_widget, 2)

        button_layout = QHBoxLayout()
        self.save_button = QPushButton("保存配置")
        self.save_button.clicked.connect(self.save_settings)
        self.build_button = QPushButton("构建启动镜像")
        self.build_button.clicked.connect(self.start_build)
        self.register_button = QPushButton("注册到ConfigMgr")
        self.register_button.clicked.connect(self.start_register)
        self.stop_button = QPushButton("停止")
        self.stop_button.setEnabled(False)
        self.stop_button.clicked.connect(self.stop_workflow)
        for button in (self.save_button, self.build_button, self.register_button, self.stop_button):
            button_layout.addWidget(button)
        main_layout.addLayout(button_layout)

        self.progress_bar = QProgressBar()
        main_layout.addWidget(self.progress_bar)

        log_group = QGroupBox("日志")
        log_layout = QVBoxLayout(log_group)
        self.log_text = QTextEdit()
        self.log_text.setReadOnly(True)
        log_layout.addWidget(self.log_text)
        log_buttons = QHBoxLayout()
        clear_button = QPushButton("清空日志")
        clear_button.clicked.connect(self.clear_log)
        save_log_button = QPushButton("保存日志")
        save_log_button.clicked.connect(self.save_log)
        log_buttons.addStretch()
        log_buttons.addWidget(clear_button)
        log_buttons.addWidget(save_log_button)
        log_layout.addLayout(log_buttons)
        main_layout.addWidget(log_group, 3)

        self.status_label = QLabel("就绪")
        self.statusBar().addWidget(self.status_label)

    def _path_row(self, line_edit: QLineEdit, directory: bool = False, file_filter: str = "所有文件 (*)"):
        """创建带浏览按钮的路径输入行"""
        row = QHBoxLayout()
        row.addWidget(line_edit)
        browse_button = QPushButton("浏览...")

        def browse():
            if directory:
                path = QFileDialog.getExistingDirectory(self, "选择目录", line_edit.text())
            else:
                path, _ = QFileDialog.getOpenFileName(self, "选择文件", line_edit.text(), file_filter)
            if path:
                line_edit.setText(path)

        browse_button.clicked.connect(browse)
        row.addWidget(browse_button)
        return row

    def create_image_tab(self) -> QWidget:
        """创建镜像标签页"""
        widget = QWidget()
        form = QFormLayout(widget)

        self.adk_path_edit = QLineEdit()
        self.adk_path_edit.setPlaceholderText("留空自动检测")
        form.addRow("ADK 安装路径:", self._path_row(self.adk_path_edit, directory=True))

        self.adk_status_label = QLabel("")
        form.addRow("ADK 状态:", self.adk_status_label)

        self.arch_combo = QComboBox()
        self.arch_combo.addItems(self.config_manager.get_available_architectures())
        form.addRow("架构:", self.arch_combo)

        self.source_edit = QLineEdit()
        self.source_edit.setPlaceholderText("留空使用 ADK 中的 winpe.wim")
        form.addRow("参考镜像:", self._path_row(self.source_edit, file_filter="WIM 镜像 (*.wim)"))

        self.workspace_edit = QLineEdit()
        form.addRow("工作目录:", self._path_row(self.workspace_edit, directory=True))

        self.index_spin = QSpinBox()
        self.index_spin.setRange(1, 99)
        form.addRow("镜像索引:", self.index_spin)

        self.export_check = QCheckBox("完成后导出镜像")
        form.addRow(self.export_check)

        self.export_edit = QLineEdit()
        self.export_edit.setPlaceholderText("留空原地导出")
        form.addRow("导出到:", self.export_edit)

        self.compress_combo = QComboBox()
        self.compress_combo.addItems(["max", "fast", "none", "recovery"])
        form.addRow("压缩类型:", self.compress_combo)

        split_row = QHBoxLayout()
        self.split_check = QCheckBox("拆分为 .swm")
        self.split_size_spin = QSpinBox()
        self.split_size_spin.setRange(100, 100000)
        self.split_size_spin.setSuffix(" MB")
        split_row.addWidget(self.split_check)
        split_row.addWidget(self.split_size_spin)
        split_row.addStretch()
        form.addRow("拆分:", split_row)

        return widget

    def create_customization_tab(self) -> QWidget:
        """创建定制标签页"""
        widget = QWidget()
        layout = QHBoxLayout(widget)

        component_group = QGroupBox("WinPE 可选组件")
        component_layout = QVBoxLayout(component_group)
        self.language_edit = QLineEdit()
        language_row = QHBoxLayout()
        language_row.addWidget(QLabel("语言包:"))
        language_row.addWidget(self.language_edit)
        component_layout.addLayout(language_row)
        self.component_list = QListWidget()
        component_layout.addWidget(self.component_list)
        layout.addWidget(component_group)

        right_layout = QVBoxLayout()

        driver_group = QGroupBox("驱动程序")
        driver_layout = QVBoxLayout(driver_group)
        self.driver_list = QListWidget()
        driver_layout.addWidget(self.driver_list)
        driver_buttons = QHBoxLayout()
        add_driver_button = QPushButton("添加目录")
        add_driver_button.clicked.connect(self.add_driver_folder)
        remove_driver_button = QPushButton("移除")
        remove_driver_button.clicked.connect(self.remove_selected_driver)
        driver_buttons.addWidget(add_driver_button)
        driver_buttons.addWidget(remove_driver_button)
        driver_layout.addLayout(driver_buttons)
        right_layout.addWidget(driver_group)

        other_group = QGroupBox("功能与更新")
        other_form = QFormLayout(other_group)
        self.features_edit = QLineEdit()
        self.features_edit.setPlaceholderText("多个功能用逗号分隔")
        other_form.addRow("启用功能:", self.features_edit)
        self.update_edit = QLineEdit()
        other_form.addRow("累积更新:", self._path_row(self.update_edit, file_filter="更新包 (*.msu *.cab)"))
        right_layout.addWidget(other_group)

        layout.addLayout(right_layout)
        return widget

    def create_configmgr_tab(self) -> QWidget:
        """创建Configuration Manager标签页"""
        widget = QWidget()
        form = QFormLayout(widget)

        self.provider_edit = QLineEdit()
        form.addRow("SMS Provider:", self.provider_edit)
        self.boot_image_name_edit = QLineEdit()
        form.addRow("启动镜像名称:", self.boot_image_name_edit)
        self.unc_edit = QLineEdit()
        self.unc_edit.setPlaceholderText(r"\\server\share\boot.wim")
        form.addRow("UNC 路径:", self.unc_edit)
        self.username_edit = QLineEdit()
        form.addRow("用户名:", self.username_edit)
        self.password_edit = QLineEdit()
        self.password_edit.setEchoMode(QLineEdit.Password)
        form.addRow("密码:", self.password_edit)
        self.replace_check = QCheckBox("替换同名记录")
        form.addRow(self.replace_check)

        return widget

    def load_settings(self):
        """把配置加载到界面"""
        config = self.config_manager
        self.adk_path_edit.setText(config.get("adk.install_path", ""))
        self.arch_combo.setCurrentText(config.get("winpe.architecture", "amd64"))
        self.language_edit.setText(config.get("winpe.language", "en-us"))
        self.source_edit.setText(config.get("image.source", ""))
        self.workspace_edit.setText(str(config.get_workspace()))
        self.index_spin.setValue(int(config.get("image.index", 1)))
        self.export_check.setChecked(config.get("export.enabled", True))
        self.export_edit.setText(config.get("export.destination", ""))
        self.compress_combo.setCurrentText(config.get("export.compress", "max"))
        self.split_check.setChecked(config.get("export.split", False))
        self.split_size_spin.setValue(int(config.get("export.split_size_mb", 3800)))

        self.driver_list.clear()
        self.driver_list.addItems(config.get("customization.drivers", []))
        self.features_edit.setText(", ".join(config.get("customization.features", [])))
        self.update_edit.setText(config.get("customization.update_package", ""))

        self.provider_edit.setText(config.get("configmgr.provider", ""))
        self.boot_image_name_edit.setText(config.get("configmgr.boot_image_name", ""))
        self.unc_edit.setText(config.get("configmgr.image_path_unc", ""))
        self.username_edit.setText(config.get("configmgr.username", ""))
        self.password_edit.setText(config.get("configmgr.password", ""))
        self.replace_check.setChecked(config.get("configmgr.replace_existing", True))

    def apply_settings(self):
        """把界面内容写回配置"""
        config = self.config_manager
        config.set("adk.install_path", self.adk_path_edit.text().strip())
        config.set("winpe.architecture", self.arch_combo.currentText())
        config.set("winpe.language", self.language_edit.text().strip() or "en-us")
        config.set("winpe.components", self.get_checked_components())
        config.set("image.source", self.source_edit.text().strip())
        config.set("image.workspace", self.workspace_edit.text().strip())
        config.set("image.index", self.index_spin.value())
        config.set("export.enabled", self.export_check.isChecked())
        config.set("export.destination", self.export_edit.text().strip())
        config.set("export.compress", self.compress_combo.currentText())
        config.set("export.split", self.split_check.isChecked())
        config.set("export.split_size_mb", self.split_size_spin.value())

        features = [f.strip() for f in self.features_edit.text().split(",") if f.strip()]
        config.set("customization.features", features)
        config.set("customization.update_package", self.update_edit.text().strip())

        config.set("configmgr.provider", self.provider_edit.text().strip())
        config.set("configmgr.boot_image_name", self.boot_image_name_edit.text().strip())
        config.set("configmgr.image_path_unc", self.unc_edit.text().strip())
        config.set("configmgr.username", self.username_edit.text().strip())
        config.set("configmgr.password", self.password_edit.text())
        config.set("configmgr.replace_existing", self.replace_check.isChecked())

    def save_settings(self):
        """保存配置"""
        self.apply_settings()
        if self.config_manager.save_config():
            self.log_message("✅ 配置已保存")
        else:
            self.log_message("❌ 配置保存失败")

    def check_adk_status(self):
        """检查ADK状态并刷新组件列表"""
        status = self.adk_manager.get_adk_install_status()
        if status["adk_installed"] and status["winpe_installed"]:
            self.adk_status_label.setText(f"✅ {status['adk_path']}")
            self.log_message(f"ℹ️ {status['winpe_message']}")
        else:
            self.adk_status_label.setText(f"❌ {status['adk_message']}; {status['winpe_message']}")
            self.log_message(f"⚠️ {status['adk_message']}")
        if not status["has_admin"]:
            self.log_message("⚠️ 当前没有管理员权限，挂载操作将失败")
        self.refresh_components()

    def refresh_components(self):
        """根据 WinPE_OCs 目录刷新可选组件列表"""
        selected = set(self.config_manager.get("winpe.components", []))
        names = list(selected)
        oc_path = self.adk_manager.get_winpe_oc_path(self.arch_combo.currentText())
        if oc_path:
            available = PackageManager(DismEngine(self.adk_manager)).get_available_components(oc_path)
            names = sorted(set(names) | {c["name"] for c in available})

        self.component_list.clear()
        for name in sorted(names):
            item = QListWidgetItem(name)
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
            item.setCheckState(Qt.Checked if name in selected else Qt.Unchecked)
            self.component_list.addItem(item)

    def get_checked_components(self):
        """获取勾选的组件，保持配置中的原有顺序"""
        checked = [
            self.component_list.item(i).text()
            for i in range(self.component_list.count())
            if self.component_list.item(i).checkState() == Qt.Checked
        ]
        previous = self.config_manager.get("winpe.components", [])
        ordered = [name for name in previous if name in checked]
        return ordered + [name for name in checked if name not in ordered]

    def add_driver_folder(self):
        path = QFileDialog.getExistingDirectory(self, "选择驱动目录")
        if path and self.config_manager.add_driver(path):
            self.driver_list.addItem(path)

    def remove_selected_driver(self):
        for item in self.driver_list.selectedItems():
            self.config_manager.remove_driver(item.text())
            self.driver_list.takeItem(self.driver_list.row(item))

    def start_build(self):
        """开始构建启动镜像"""
        self.apply_settings()
        self.adk_manager.install_path = Path(self.adk_path_edit.text()) if self.adk_path_edit.text() else None
        workflow = build_boot_image_workflow(self.config_manager, self.adk_manager)
        self.start_workflow(workflow)

    def start_register(self):
        """开始注册到Configuration Manager"""
        self.apply_settings()
        workflow = register_boot_image_workflow(self.config_manager)
        self.start_workflow(workflow)

    def start_workflow(self, workflow):
        if self.servicing_thread and self.servicing_thread.isRunning():
            QMessageBox.warning(self, "提示", "已有流程正在执行")
            return

        self.log_message(f"=== 开始: {workflow.name} ===")
        self.progress_bar.setValue(0)
        self.set_running(True)

        self.servicing_thread = ServicingThread(workflow, self)
        self.servicing_thread.progress_signal.connect(self.progress_bar.setValue)
        self.servicing_thread.log_signal.connect(self.log_message)
        self.servicing_thread.finished_signal.connect(self.on_workflow_finished)
        self.servicing_thread.error_signal.connect(self.on_workflow_error)
        self.servicing_thread.start()

    def stop_workflow(self):
        if self.servicing_thread:
            self.servicing_thread.stop()
            self.log_message("⚠️ 已请求停止，当前步骤完成后停止")

    def set_running(self, running: bool):
        self.build_button.setEnabled(not running)
        self.register_button.setEnabled(not running)
        self.stop_button.setEnabled(running)
        self.status_label.setText("正在执行..." if running else "就绪")

    def on_workflow_finished(self, success: bool, message: str):
        self.set_running(False)
        if success:
            self.log_message(f"🎉 {message}")
            QMessageBox.information(self, "完成", message)
        else:
            self.log_message(f"❌ {message}")
            QMessageBox.critical(self, "失败", message)

    def on_workflow_error(self, message: str):
        self.set_running(False)
        self.log_message(f"❌ {message}")
        QMessageBox.critical(self, "错误", message)

    def log_message(self, message: str):
        """添加日志消息"""
        timestamp = datetime.datetime.now().strftime("%H:%M:%S")

        if message.startswith("==="):
            color = QColor("#0066CC")
        elif message.startswith("✅"):
            color = QColor("green")
        elif message.startswith("❌"):
            color = QColor("red")
        elif message.startswith("⚠️"):
            color = QColor("orange")
        elif message.startswith("步骤"):
            color = QColor("#800080")
        elif message.startswith("🎉"):
            color = QColor("#FF1493")
        else:
            color = QColor("black")

        self.log_text.setTextColor(color)
        self.log_text.append(f"[{timestamp}] {message}")
        scrollbar = self.log_text.verticalScrollBar()
        scrollbar.setValue(scrollbar.maximum())

    def clear_log(self):
        """清空日志"""
        self.log_text.clear()
        self.log_message("=== 日志已清空 ===")

    def save_log(self):
        """保存日志"""
        try:
            timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            default_name = f"servicing_log_{timestamp}.txt"
            file_path, _ = QFileDialog.getSaveFileName(
                self, "保存日志", default_name, "文本文件 (*.txt);;所有文件 (*)"
            )
            if file_path:
                with open(file_path, 'w', encoding='utf-8') as f:
                    f.write(self.log_text.toPlainText())
                self.log_message(f"✅ 日志已保存到: {file_path}")
        except OSError as e:
            log_error(e, "保存日志")
            self.log_message(f"❌ 保存日志失败: {str(e)}")

    def closeEvent(self, event):
        if self.servicing_thread and self.servicing_thread.isRunning():
            reply = QMessageBox.question(self, "确认", "流程仍在执行，确定要退出吗？")
            if reply != QMessageBox.Yes:
                event.ignore()
                return
            self.servicing_thread.stop()
            self.servicing_thread.wait()
        event.accept()
