from __future__ import annotations

from typer.testing import CliRunner

from qcedl import cli
from qcedl.core.command_table import load_packaged_table
from qcedl.core.errors import (
    MalformedBodyError,
    SessionCancelledError,
    SessionTimeoutError,
    TransportConnectError,
    UnsupportedModeError,
)
from qcedl.core.model import AttributeKind, HelloInfo, SessionResult, Unsupported


class FakeService:
    def __init__(self, *, table_path=None) -> None:
        self.table = load_packaged_table()
        self.load_warnings = ()

    def list_commands(self):
        return sorted(self.table.entries.values(), key=lambda e: e.code)

    def read_info(self, attributes, *, settings=None, cancel_event=None):
        kinds = tuple(attributes)
        FakeService.last_call = (kinds, settings)
        values = {
            AttributeKind.HARDWARE_ID: 0x007F10E1_00000000,
            AttributeKind.SERIAL_NUMBER: 0x789EE21B,
            AttributeKind.OEM_PK_HASH: Unsupported(reason="rejected", status=0x1F),
            AttributeKind.COMMAND_ID_LIST: (1, 2, 3),
        }
        return SessionResult(
            hello=HelloInfo(version=2, compatible=1, max_length=0x400, mode=0),
            attributes={kind: values[kind] for kind in kinds},
        )


def _failing_service(exc: Exception):
    class FailingService(FakeService):
        def read_info(self, attributes, *, settings=None, cancel_event=None):
            raise exc

    return FailingService


runner = CliRunner()


def test_info_default_attributes(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", FakeService)
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == 0
    assert "Sahara version: 2 (compatible 1)" in result.stdout
    assert "Hardware ID: 007f10e1 (OEM 0000, model 0000)" in result.stdout
    assert "Serial number: 789ee21b" in result.stdout
    kinds, settings = FakeService.last_call
    assert kinds == (AttributeKind.HARDWARE_ID, AttributeKind.SERIAL_NUMBER)
    assert settings.reset_on_exit is False


def test_info_selected_attributes_and_options(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", FakeService)
    result = runner.invoke(
        cli.app,
        ["info", "-a", "oem-pk-hash", "-a", "command-id-list", "--timeout", "2", "--reset"],
    )
    assert result.exit_code == 0
    assert "OEM PK hash: unsupported" in result.stdout
    assert "Command IDs: 0x01, 0x02, 0x03" in result.stdout
    kinds, settings = FakeService.last_call
    assert kinds == (AttributeKind.OEM_PK_HASH, AttributeKind.COMMAND_ID_LIST)
    assert settings.response_timeout_s == 2.0
    assert settings.reset_on_exit is True


def test_timeout_exit_code(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", _failing_service(SessionTimeoutError("No response from device during hello")))
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == cli.EXIT_UNREACHABLE
    assert "Error: No response from device during hello" in result.stderr
    assert "Reconnect the device" in result.stderr
    assert "Traceback" not in result.stderr


def test_missing_device_exit_code(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", _failing_service(TransportConnectError("No EDL device found")))
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == cli.EXIT_UNREACHABLE


def test_refused_exit_code(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", _failing_service(UnsupportedModeError("Device requested image 13")))
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == cli.EXIT_REFUSED
    assert "Error: Device requested image 13" in result.stderr


def test_garbage_exit_code(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", _failing_service(MalformedBodyError("bad body", step="decode")))
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == cli.EXIT_GARBAGE
    assert "check the cable" in result.stderr


def test_attributes_command(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", FakeService)
    result = runner.invoke(cli.app, ["attributes"])
    assert result.exit_code == 0
    assert "sahara: Sahara command mode" in result.stdout
    assert "0x01 serial-number [uint32]" in result.stdout
    assert "0x02 hardware-id [uint64]" in result.stdout
    assert "0x08 command-id-list [u32-list]" in result.stdout


def test_load_warning_is_printed(monkeypatch):
    class WarnService(FakeService):
        def __init__(self, *, table_path=None) -> None:
            super().__init__(table_path=table_path)
            self.load_warnings = ("Command table 'custom' overrides serial-number",)

    monkeypatch.setattr(cli, "EdlService", WarnService)
    result = runner.invoke(cli.app, ["attributes"])
    assert result.exit_code == 0
    assert "Warning: Command table 'custom' overrides serial-number" in result.stderr


def test_cancelled_session_exit_code(monkeypatch):
    monkeypatch.setattr(cli, "EdlService", _failing_service(SessionCancelledError("Session cancelled before execute")))
    result = runner.invoke(cli.app, ["info"])
    assert result.exit_code == cli.EXIT_UNREACHABLE
    assert "Error: Session cancelled before execute" in result.stderr
