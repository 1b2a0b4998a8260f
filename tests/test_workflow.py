"""Tests for the step runner and the build / register workflows."""
from unittest.mock import Mock

import pytest

from core.adk_manager import ADKManager
from core.workflow import (
    ServicingWorkflow,
    WorkflowStep,
    build_boot_image_workflow,
    register_boot_image_workflow,
)


class TestServicingWorkflow:
    def test_runs_steps_in_order(self):
        order = []
        steps = [
            WorkflowStep("one", lambda: (order.append(1), (True, "ok"))[1]),
            WorkflowStep("two", lambda: (order.append(2), (True, "ok"))[1]),
        ]

        result = ServicingWorkflow("demo", steps).run()

        assert result.success
        assert order == [1, 2]
        assert result.completed_steps == ["one", "two"]

    def test_halts_on_first_failure_and_compensates(self):
        third = Mock(return_value=(True, "ok"))
        compensate = Mock()
        steps = [
            WorkflowStep("one", lambda: (True, "ok")),
            WorkflowStep("two", lambda: (False, "broken")),
            WorkflowStep("three", third),
        ]

        result = ServicingWorkflow("demo", steps, on_failure=compensate).run()

        assert not result.success
        assert result.failed_step == "two"
        assert "broken" in result.message
        third.assert_not_called()
        compensate.assert_called_once_with()

    def test_exception_becomes_failure(self):
        def explode():
            raise RuntimeError("disk gone")

        result = ServicingWorkflow("demo", [WorkflowStep("boom", explode)]).run()

        assert not result.success
        assert "disk gone" in result.message

    def test_stop_before_next_step(self):
        second = Mock(return_value=(True, "ok"))
        workflow = ServicingWorkflow("demo", [])
        workflow.steps = [
            WorkflowStep("one", lambda: (workflow.stop(), (True, "ok"))[1]),
            WorkflowStep("two", second),
        ]

        result = workflow.run()

        assert not result.success
        assert result.failed_step == "two"
        second.assert_not_called()

    def test_progress_and_completion_callbacks(self):
        progress = []
        completed = []
        workflow = ServicingWorkflow("demo", [WorkflowStep("one", lambda: (True, "ok"))],
                                     on_complete=completed.append)
        workflow.set_progress_callback(lambda i, total, name: progress.append((i, total, name)))

        result = workflow.run()

        assert progress == [(1, 1, "one")]
        assert completed == [result]
        assert result.report_lines()[0] == "[成功] one: ok"

    def test_step_results_reported_as_each_step_ends(self):
        events = []
        steps = [
            WorkflowStep("one", lambda: (events.append("run one"), (True, "mounted"))[1]),
            WorkflowStep("two", lambda: (events.append("run two"), (False, "dism error"))[1]),
        ]
        workflow = ServicingWorkflow("demo", steps)
        workflow.set_step_callback(lambda name, ok, message: events.append((name, ok, message)))

        workflow.run()

        assert events == [
            "run one",
            ("one", True, "mounted"),
            "run two",
            ("two", False, "dism error"),
        ]


@pytest.fixture
def adk(config):
    return ADKManager(install_path=config.get("adk.install_path"))


class TestBuildBootImageWorkflow:
    def test_full_sequence(self, config, adk, fake_engine):
        result = build_boot_image_workflow(config, adk, fake_engine).run()

        assert result.success, result.message
        assert fake_engine.verbs() == [
            "mount",
            "add_package", "add_package", "add_package", "add_package",
            "unmount",
            "mount", "cleanup", "unmount",
            "export",
        ]
        image = config.get_image_path()
        assert image.read_bytes() == b"exported-image"
        assert not config.get_mount_dir().exists()

    def test_update_package_gets_its_own_mount(self, config, adk, fake_engine, tmp_path):
        update = tmp_path / "kb5031356.msu"
        update.write_bytes(b"msu")
        config.set("customization.update_package", str(update))
        config.set("winpe.components", [])

        result = build_boot_image_workflow(config, adk, fake_engine).run()

        assert result.success, result.message
        assert fake_engine.verbs() == [
            "mount", "unmount",
            "mount", "add_package", "unmount",
            "mount", "cleanup", "unmount",
            "export",
        ]
        assert fake_engine.calls[3] == ("add_package", update)

    def test_drivers_and_features(self, config, adk, fake_engine, tmp_path):
        drivers = tmp_path / "drivers"
        drivers.mkdir()
        assert config.add_driver(str(drivers))
        config.set("customization.features", ["NetFx3"])
        config.set("export.enabled", False)

        result = build_boot_image_workflow(config, adk, fake_engine).run()

        assert result.success, result.message
        assert "add_driver" in fake_engine.verbs()
        assert "enable_feature" in fake_engine.verbs()
        assert "export" not in fake_engine.verbs()

    def test_failure_discards_mount_and_stops(self, config, adk, fake_engine):
        fake_engine.fail("cleanup")

        result = build_boot_image_workflow(config, adk, fake_engine).run()

        assert not result.success
        assert result.failed_step == "清理组件存储"
        assert fake_engine.calls[-1] == ("unmount", config.get_mount_dir(), False)
        assert "export" not in fake_engine.verbs()

    def test_missing_adk_stops_before_touching_files(self, config, fake_engine, tmp_path):
        adk = ADKManager(install_path=tmp_path / "no-adk")
        adk.COMMON_ADK_PATHS = []
        adk._find_adk_from_registry = lambda: None

        result = build_boot_image_workflow(config, adk, fake_engine).run()

        assert not result.success
        assert result.failed_step == "检查前置条件"
        assert fake_engine.calls == []
        assert not config.get_image_path().exists()

    def test_export_and_split(self, config, adk, fake_engine, tmp_path):
        destination = tmp_path / "out" / "boot.wim"
        config.set("export.destination", str(destination))
        config.set("export.split", True)
        config.set("export.split_size_mb", 200)

        result = build_boot_image_workflow(config, adk, fake_engine).run()

        assert result.success, result.message
        assert fake_engine.verbs()[-2:] == ["export", "split"]
        assert not destination.exists()
        assert (destination.parent / "boot.swm").exists()
        assert config.get_image_path().exists()


class TestRegisterBootImageWorkflow:
    @pytest.fixture
    def cm_config(self, config, tmp_path):
        config.set("configmgr.provider", "cm01.contoso.com")
        config.set("configmgr.boot_image_name", "WinPE x64")
        config.set("configmgr.image_path_unc", r"\\cm01\boot\boot.wim")
        config.set("configmgr.report_path", str(tmp_path / "report.txt"))
        return config

    def test_replaces_existing_record(self, cm_config, tmp_path):
        client = Mock()
        client.get_boot_image.return_value = (True, {"PackageID": "PS100012", "Name": "WinPE x64"})
        client.delete_boot_image.return_value = (True, "deleted")
        client.create_boot_image.return_value = (True, "PS100013")
        client.refresh_boot_image.return_value = (True, "refreshed")

        result = register_boot_image_workflow(cm_config, client).run()

        assert result.success, result.message
        client.delete_boot_image.assert_called_once_with("WinPE x64")
        client.create_boot_image.assert_called_once_with("WinPE x64", r"\\cm01\boot\boot.wim", 1, "")
        report = (tmp_path / "report.txt").read_text(encoding="utf-8")
        assert "PS100013" in report
        assert "[成功]" in report

    def test_failure_is_reported(self, cm_config, tmp_path):
        client = Mock()
        client.get_boot_image.return_value = (True, None)
        client.create_boot_image.return_value = (False, "AdminService 返回错误 403")

        result = register_boot_image_workflow(cm_config, client).run()

        assert not result.success
        client.delete_boot_image.assert_not_called()
        client.refresh_boot_image.assert_not_called()
        assert "403" in (tmp_path / "report.txt").read_text(encoding="utf-8")

    def test_missing_settings(self, config, tmp_path):
        config.set("configmgr.report_path", str(tmp_path / "report.txt"))
        client = Mock()

        result = register_boot_image_workflow(config, client).run()

        assert not result.success
        assert result.failed_step == "检查注册配置"
        client.create_boot_image.assert_not_called()

    def test_lookup_failure_stops_before_create(self, cm_config):
        client = Mock()
        client.get_boot_image.return_value = (False, "连接 AdminService 失败: reset")

        result = register_boot_image_workflow(cm_config, client).run()

        assert not result.success
        assert result.failed_step == "删除同名启动镜像记录"
        assert "reset" in result.message
        client.delete_boot_image.assert_not_called()
        client.create_boot_image.assert_not_called()
