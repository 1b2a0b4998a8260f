"""
Pytest configuration and shared fixtures for bootimage-manager tests.

Provides a fake servicing engine that imitates DISM's file-system effects,
a temporary ADK installation tree and a config manager bound to tmp_path.
"""

import shutil
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from core.config_manager import ConfigManager
from core.servicing.engine import ServicingEngine


class FakeEngine(ServicingEngine):
    """Records every call and mimics the on-disk result of each verb."""

    def __init__(self):
        self.calls: List[Tuple] = []
        self.failures = set()
        self.export_writes = True
        self.split_fragments = 2
        self.query_output = "Index : 1\nName : Microsoft Windows PE (amd64)"

    def fail(self, *verbs: str):
        self.failures.update(verbs)

    def _result(self, verb: str, *args) -> Tuple[bool, str]:
        self.calls.append((verb,) + args)
        if verb in self.failures:
            return False, f"{verb} failed"
        return True, f"{verb} ok"

    def verbs(self) -> List[str]:
        return [call[0] for call in self.calls]

    def mount(self, image, index, mount_dir, read_only=False):
        ok, message = self._result("mount", Path(image), index, Path(mount_dir))
        if ok:
            (Path(mount_dir) / "Windows" / "System32").mkdir(parents=True, exist_ok=True)
        return ok, message

    def unmount(self, mount_dir, commit=True):
        ok, message = self._result("unmount", Path(mount_dir), commit)
        if ok:
            for child in Path(mount_dir).iterdir():
                shutil.rmtree(child) if child.is_dir() else child.unlink()
        return ok, message

    def remount(self, mount_dir):
        return self._result("remount", Path(mount_dir))

    def add_package(self, mount_dir, package_path, ignore_check=False):
        return self._result("add_package", Path(package_path))

    def remove_package(self, mount_dir, package_name):
        return self._result("remove_package", package_name)

    def add_driver(self, mount_dir, driver_path, recurse=False, force_unsigned=False):
        return self._result("add_driver", Path(driver_path), recurse)

    def remove_driver(self, mount_dir, driver):
        return self._result("remove_driver", driver)

    def enable_feature(self, mount_dir, feature, source=None, all_parents=True):
        return self._result("enable_feature", feature)

    def disable_feature(self, mount_dir, feature):
        return self._result("disable_feature", feature)

    def cleanup(self, mount_dir, reset_base=True):
        return self._result("cleanup", Path(mount_dir), reset_base)

    def export(self, source, index, destination, compress="max"):
        ok, message = self._result("export", Path(source), index, Path(destination), compress)
        if self.export_writes:
            Path(destination).write_bytes(b"exported-image")
        return ok, message

    def split(self, image, swm_file, file_size_mb):
        ok, message = self._result("split", Path(image), Path(swm_file), file_size_mb)
        if ok:
            swm_file = Path(swm_file)
            for i in range(self.split_fragments):
                name = swm_file.name if i == 0 else f"{swm_file.stem}{i + 1}.swm"
                (swm_file.parent / name).write_bytes(b"fragment")
        return ok, message

    def query(self, kind, target, index=None):
        ok, _ = self._result("query", kind, Path(target), index)
        return ok, self.query_output if ok else "query failed"

    def cleanup_mountpoints(self):
        return self._result("cleanup_mountpoints")


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def mounted_dir(tmp_path) -> Path:
    """A mount directory that already looks populated."""
    mount_dir = tmp_path / "mount"
    (mount_dir / "Windows").mkdir(parents=True)
    return mount_dir


@pytest.fixture
def adk_root(tmp_path) -> Path:
    """Minimal Windows ADK layout with WinPE add-on, DISM and a few components."""
    root = tmp_path / "Windows Kits" / "10"
    winpe = root / "Assessment and Deployment Kit" / "Windows Preinstallation Environment" / "amd64"
    oc = winpe / "WinPE_OCs"
    (oc / "en-us").mkdir(parents=True)
    (winpe / "en-us").mkdir(parents=True, exist_ok=True)
    (winpe / "en-us" / "winpe.wim").write_bytes(b"reference-wim")

    for name in ("WinPE-WMI", "WinPE-Scripting"):
        (oc / f"{name}.cab").write_bytes(b"cab")
        (oc / "en-us" / f"{name}_en-us.cab").write_bytes(b"cab")

    dism = root / "Assessment and Deployment Kit" / "Deployment Tools" / "amd64" / "DISM"
    dism.mkdir(parents=True)
    (dism / "dism.exe").write_bytes(b"")
    return root


@pytest.fixture
def config(tmp_path, adk_root) -> ConfigManager:
    config_manager = ConfigManager(tmp_path / "config" / "servicing_config.json")
    config_manager.set("adk.install_path", str(adk_root))
    config_manager.set("image.workspace", str(tmp_path / "workspace"))
    config_manager.set("winpe.components", ["WinPE-WMI", "WinPE-Scripting"])
    return config_manager
