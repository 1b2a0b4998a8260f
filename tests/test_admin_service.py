"""Tests for the Configuration Manager AdminService client."""
from unittest.mock import MagicMock, Mock

import pytest
import requests

from core.configmgr.admin_service import ConfigMgrClient, write_status_report

BASE = "https://cm01.contoso.com/AdminService/wmi"
RECORD = {"PackageID": "PS100012", "Name": "WinPE x64", "ImagePath": r"\\cm01\boot\boot.wim"}


def response(status=200, payload=None):
    resp = Mock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    resp.text = "" if payload is None else str(payload)
    return resp


@pytest.fixture
def session():
    mock_session = MagicMock(spec=requests.Session)
    mock_session.headers = {}
    return mock_session


@pytest.fixture
def client(session):
    return ConfigMgrClient("cm01.contoso.com", auth=("CONTOSO\\cmadmin", "secret"), session=session)


class TestQuery:
    def test_get_boot_image_filters_by_name(self, client, session):
        session.request.return_value = response(payload={"value": [RECORD]})

        success, record = client.get_boot_image("WinPE x64")

        assert success
        assert record == RECORD
        method, url = session.request.call_args[0]
        assert (method, url) == ("GET", f"{BASE}/SMS_BootImagePackage")
        assert session.request.call_args[1]["params"] == {"$filter": "Name eq 'WinPE x64'"}

    def test_quotes_are_escaped(self, client, session):
        session.request.return_value = response(payload={"value": []})

        assert client.get_boot_image("Tom's PE") == (True, None)
        assert session.request.call_args[1]["params"] == {"$filter": "Name eq 'Tom''s PE'"}

    def test_connection_error_is_not_a_missing_record(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        success, message = client.get_boot_image("WinPE x64")

        assert not success
        assert "refused" in message

    def test_session_configuration(self, client, session):
        assert session.auth == ("CONTOSO\\cmadmin", "secret")
        assert session.verify is True
        assert session.headers["Accept"] == "application/json"


class TestCreate:
    def test_create_posts_record(self, client, session):
        session.request.side_effect = [
            response(payload={"value": []}),
            response(status=201, payload={"PackageID": "PS100013"}),
        ]

        success, package_id = client.create_boot_image("WinPE x64", r"\\cm01\boot\boot.wim", 1, "serviced")

        assert success
        assert package_id == "PS100013"
        method, url = session.request.call_args[0]
        assert (method, url) == ("POST", f"{BASE}/SMS_BootImagePackage")
        body = session.request.call_args[1]["json"]
        assert body["ImagePath"] == r"\\cm01\boot\boot.wim"
        assert body["ImageIndex"] == 1

    def test_refuses_duplicate(self, client, session):
        session.request.return_value = response(payload={"value": [RECORD]})

        success, message = client.create_boot_image("WinPE x64", r"\\cm01\boot\boot.wim")

        assert not success
        assert "已存在" in message
        assert session.request.call_count == 1

    def test_requires_unc_path(self, client, session):
        success, _ = client.create_boot_image("WinPE x64", r"C:\boot.wim")

        assert not success
        session.request.assert_not_called()

    def test_failed_lookup_blocks_post(self, client, session):
        session.request.side_effect = [
            requests.ConnectionError("reset"),
            response(status=201, payload={"PackageID": "PS100099"}),
        ]

        success, message = client.create_boot_image("WinPE x64", r"\\cm01\boot\boot.wim")

        assert not success
        assert "reset" in message
        assert [c[0][0] for c in session.request.call_args_list] == ["GET"]

    def test_server_error(self, client, session):
        session.request.side_effect = [
            response(payload={"value": []}),
            response(status=500, payload={"error": "boom"}),
        ]

        success, message = client.create_boot_image("WinPE x64", r"\\cm01\boot\boot.wim")

        assert not success
        assert "500" in message


class TestDeleteAndRefresh:
    def test_delete_by_package_id(self, client, session):
        session.request.side_effect = [response(payload={"value": [RECORD]}), response(status=204)]

        success, _ = client.delete_boot_image("WinPE x64")

        assert success
        method, url = session.request.call_args[0]
        assert (method, url) == ("DELETE", f"{BASE}/SMS_BootImagePackage('PS100012')")

    def test_delete_missing_record(self, client, session):
        session.request.return_value = response(payload={"value": []})

        success, message = client.delete_boot_image("WinPE x64")

        assert not success
        assert "不存在" in message

    @pytest.mark.parametrize("operation", ["delete_boot_image", "refresh_boot_image"])
    def test_lookup_failure_is_reported(self, client, session, operation):
        session.request.side_effect = requests.ConnectionError("reset")

        success, message = getattr(client, operation)("WinPE x64")

        assert not success
        assert "reset" in message
        assert "不存在" not in message
        assert session.request.call_count == 1

    def test_refresh(self, client, session):
        session.request.side_effect = [response(payload={"value": [RECORD]}), response(status=200, payload={})]

        success, _ = client.refresh_boot_image("WinPE x64")

        assert success
        method, url = session.request.call_args[0]
        assert method == "POST"
        assert url == f"{BASE}/SMS_BootImagePackage('PS100012')/AdminService.RefreshPkgSource"


class TestStatusReport:
    def test_report_is_appended(self, tmp_path):
        report = tmp_path / "logs" / "report.txt"

        write_status_report(report, ["first"], title="one")
        success, _ = write_status_report(report, ["second"], title="two")

        assert success
        text = report.read_text(encoding="utf-8")
        assert text.index("first") < text.index("second")
        assert "=== one [" in text
