#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
服务流程线程模块
在后台线程中执行服务流程，避免阻塞界面
"""

from PyQt5.QtCore import QThread, pyqtSignal

from utils.logger import get_logger


class ServicingThread(QThread):
    """服务流程线程"""

    progress_signal = pyqtSignal(int)
    log_signal = pyqtSignal(str)
    finished_signal = pyqtSignal(bool, str)
    error_signal = pyqtSignal(str)

    def __init__(self, workflow, parent=None):
        super().__init__(parent)
        self.workflow = workflow
        self.workflow.set_progress_callback(self._on_progress)
        self.workflow.set_step_callback(self._on_step_finished)

    def _on_progress(self, current: int, total: int, step_name: str):
        self.progress_signal.emit(int((current - 1) * 100 / total))
        self.log_signal.emit(f"步骤 {current}/{total}: {step_name}")

    def _on_step_finished(self, step_name: str, ok: bool, message: str):
        prefix = "✅" if ok else "❌"
        self.log_signal.emit(f"{prefix} {step_name}: {message}")

    def run(self):
        """执行服务流程"""
        logger = get_logger()
        try:
            logger.info(f"开始执行流程: {self.workflow.name}")
            result = self.workflow.run()

            if result.success:
                self.progress_signal.emit(100)
            self.finished_signal.emit(result.success, result.message)

        except Exception as e:
            logger.error(f"流程执行异常: {str(e)}", exc_info=True)
            self.error_signal.emit(f"流程执行过程中发生错误: {str(e)}")

    def stop(self):
        """请求停止流程"""
        self.workflow.stop()
