"""Tests for the DISM argument lists built by DismEngine."""
from pathlib import Path
from unittest.mock import Mock

import pytest

from core.servicing.dism_engine import DismEngine


@pytest.fixture
def adk():
    manager = Mock()
    manager.run_dism_command.return_value = (True, "The operation completed successfully.", "")
    return manager


@pytest.fixture
def engine(adk):
    return DismEngine(adk)


def last_args(adk):
    return adk.run_dism_command.call_args[0][0]


MOUNT = Path("C:/work/mount")


class TestImageVerbs:
    def test_mount(self, engine, adk):
        success, _ = engine.mount(Path("C:/work/boot.wim"), 2, MOUNT)

        assert success
        assert last_args(adk) == [
            "/Mount-Wim",
            f"/WimFile:{Path('C:/work/boot.wim')}",
            "/Index:2",
            f"/MountDir:{MOUNT}",
        ]

    def test_mount_read_only(self, engine, adk):
        engine.mount(Path("boot.wim"), 1, MOUNT, read_only=True)

        assert last_args(adk)[-1] == "/ReadOnly"

    @pytest.mark.parametrize("commit,flag", [(True, "/Commit"), (False, "/Discard")])
    def test_unmount(self, engine, adk, commit, flag):
        engine.unmount(MOUNT, commit=commit)

        assert last_args(adk) == ["/Unmount-Wim", f"/MountDir:{MOUNT}", flag]

    def test_export(self, engine, adk):
        engine.export(Path("src.wim"), 1, Path("dst.wim"), "max")

        assert last_args(adk) == [
            "/Export-Image",
            "/SourceImageFile:src.wim",
            "/SourceIndex:1",
            "/DestinationImageFile:dst.wim",
            "/Compress:max",
            "/CheckIntegrity",
        ]

    def test_export_rejects_unknown_compression(self, engine, adk):
        success, message = engine.export(Path("src.wim"), 1, Path("dst.wim"), "lzx")

        assert not success
        adk.run_dism_command.assert_not_called()

    def test_split(self, engine, adk):
        engine.split(Path("install.wim"), Path("install.swm"), 3800)

        assert last_args(adk) == [
            "/Split-Image", "/ImageFile:install.wim", "/SWMFile:install.swm", "/FileSize:3800"
        ]


class TestServicingVerbs:
    def test_add_package(self, engine, adk):
        engine.add_package(MOUNT, Path("WinPE-WMI.cab"))

        assert last_args(adk) == [f"/Image:{MOUNT}", "/Add-Package", "/PackagePath:WinPE-WMI.cab"]

    def test_add_driver_recurse_unsigned(self, engine, adk):
        engine.add_driver(MOUNT, Path("drivers"), recurse=True, force_unsigned=True)

        assert last_args(adk) == [
            f"/Image:{MOUNT}", "/Add-Driver", "/Driver:drivers", "/Recurse", "/ForceUnsigned"
        ]

    def test_remove_driver(self, engine, adk):
        engine.remove_driver(MOUNT, "oem1.inf")

        assert last_args(adk) == [f"/Image:{MOUNT}", "/Remove-Driver", "/Driver:oem1.inf"]

    def test_enable_feature_with_source(self, engine, adk):
        engine.enable_feature(MOUNT, "NetFx3", source=Path("sxs"))

        assert last_args(adk) == [
            f"/Image:{MOUNT}", "/Enable-Feature", "/FeatureName:NetFx3", "/All", "/Source:sxs", "/LimitAccess"
        ]

    def test_cleanup(self, engine, adk):
        engine.cleanup(MOUNT, reset_base=True)

        assert last_args(adk) == [f"/Image:{MOUNT}", "/Cleanup-Image", "/StartComponentCleanup", "/ResetBase"]

    def test_failure_message_contains_dism_error(self, engine, adk):
        adk.run_dism_command.return_value = (False, "", "Error: 0x800f081f")

        success, message = engine.remove_package(MOUNT, "Package_x")

        assert not success
        assert "0x800f081f" in message


class TestQuery:
    def test_image_info(self, engine, adk):
        success, output = engine.query("image", Path("boot.wim"), 1)

        assert success
        assert output == "The operation completed successfully."
        assert last_args(adk) == ["/Get-WimInfo", "/WimFile:boot.wim", "/Index:1"]

    def test_mounted_images(self, engine, adk):
        engine.query("mounted", Path("."))

        assert last_args(adk) == ["/Get-MountedWimInfo"]

    def test_drivers_table(self, engine, adk):
        engine.query("drivers", MOUNT)

        assert last_args(adk) == [f"/Image:{MOUNT}", "/Get-Drivers", "/Format:Table"]

    def test_unknown_kind(self, engine, adk):
        success, _ = engine.query("registry", MOUNT)

        assert not success
        adk.run_dism_command.assert_not_called()
