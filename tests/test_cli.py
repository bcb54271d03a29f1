from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import ARCHIVE, FORWARD
from hl7conf import cli
from hl7conf.core.application import HL7Application, HL7DeviceExtension
from hl7conf.core.model import Connection, Device


class FakeService:
    def __init__(self) -> None:
        self.facets = {"archive": ARCHIVE, "forward": FORWARD}
        self.load_warnings = ()
        self.names = ["HL7RCV"]
        self.applied: list[Device] = []

    def _device(self) -> Device:
        device = Device(name="hl7rcv", connections=[Connection(common_name="hl7", port=2575)])
        ext = HL7DeviceExtension()
        device.add_hl7_extension(ext)
        app = HL7Application("HL7RCV")
        app.accepted_message_types = ["ADT^A01"]
        app.add_connection(device.connections[0])
        ext.add_application(app)
        return device

    def apply(self, device: Device) -> bool:
        self.applied.append(device)
        return True

    def load_device(self, name: str) -> Device:
        return self._device()

    def remove(self, name: str) -> None:
        pass

    def list_devices(self) -> list[str]:
        return ["hl7rcv"]

    def find_application(self, name: str) -> HL7Application:
        device = self._device()
        assert device.hl7 is not None
        app = device.hl7.get_application("HL7RCV")
        assert app is not None
        return app

    def list_registered_names(self) -> list[str]:
        return list(self.names)

    def register_application(self, name: str) -> bool:
        if name in self.names:
            return False
        self.names.append(name)
        return True

    def unregister_application(self, name: str) -> None:
        pass


runner = CliRunner()


def test_apply_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)
    path = tmp_path / "dev.yaml"
    path.write_text("name: hl7rcv\nhl7_applications:\n  - name: HL7RCV\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["apply", str(path)])
    assert result.exit_code == 0
    assert "Created device hl7rcv" in result.stdout


def test_apply_invalid_description_is_clean(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)
    path = tmp_path / "dev.yaml"
    path.write_text("name: hl7rcv\nhl7_applications:\n  - name: A\n    facets:\n      nope: {}\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["apply", str(path)])
    assert result.exit_code == 1
    assert "Error: HL7 application 'A' uses unknown facet 'nope'" in result.stderr
    assert "Traceback" not in result.stderr


def test_show_command(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)
    result = runner.invoke(cli.app, ["show", "hl7rcv"])
    assert result.exit_code == 0
    assert "name: hl7rcv" in result.stdout
    assert "- ADT^A01" in result.stdout


def test_devices_command(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "hl7rcv"


def test_find_command(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)
    result = runner.invoke(cli.app, ["find", "HL7RCV"])
    assert result.exit_code == 0
    assert "HL7RCV on hl7rcv" in result.stdout
    assert "installed: yes" in result.stdout
    assert "message types: ADT^A01" in result.stdout


def test_find_command_error_is_clean(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingService(FakeService):
        def find_application(self, name: str) -> HL7Application:
            from hl7conf.core.errors import ApplicationNotFoundError

            raise ApplicationNotFoundError(f"HL7 Application '{name}' not found")

    monkeypatch.setattr(cli, "HL7ConfigService", FailingService)
    result = runner.invoke(cli.app, ["find", "Z"])
    assert result.exit_code == 1
    assert "Error: HL7 Application 'Z' not found" in result.stderr
    assert "Traceback" not in result.stdout


def test_extensions_command(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)
    result = runner.invoke(cli.app, ["extensions"])
    assert result.exit_code == 0
    assert "archive: Archive [inline]" in result.stdout
    assert "forward: Forward [child (cn=HL7 Forward)]" in result.stdout
    assert "hl7FwdApplicationName (multi)" in result.stdout


def test_registry_commands(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "HL7ConfigService", FakeService)

    result = runner.invoke(cli.app, ["registry", "register", "NEW"])
    assert result.exit_code == 0
    assert "Registered NEW" in result.stdout

    result = runner.invoke(cli.app, ["registry", "register", "HL7RCV"])
    assert result.exit_code == 1
    assert "already registered" in result.stderr

    result = runner.invoke(cli.app, ["registry", "list"])
    assert result.exit_code == 0
    assert "HL7RCV" in result.stdout


def test_load_warning_is_printed(monkeypatch: pytest.MonkeyPatch) -> None:
    class WarnService(FakeService):
        def __init__(self) -> None:
            super().__init__()
            self.load_warnings = ("User extension 'archive' overrides packaged extension",)

    monkeypatch.setattr(cli, "HL7ConfigService", WarnService)
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert "Warning: User extension 'archive' overrides packaged extension" in result.stderr


def test_end_to_end_with_file_store(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("HL7CONF_STORE", str(tmp_path / "directory.yaml"))
    monkeypatch.delenv("HL7CONF_CONFIGURATION_ROOT", raising=False)
    monkeypatch.delenv("HL7CONF_BASE_DN", raising=False)
    path = tmp_path / "dev.yaml"
    path.write_text(
        """
name: hl7rcv
connections:
  - cn: hl7
    hostname: localhost
    port: 2575
hl7_applications:
  - name: HL7RCV^DCM4CHEE
    accepted_message_types: [ADT^A01]
    connections: [hl7]
    facets:
      forward:
        hl7FwdApplicationName: [DST^FAC]
""",
        encoding="utf-8",
    )

    assert runner.invoke(cli.app, ["apply", str(path)]).exit_code == 0
    result = runner.invoke(cli.app, ["apply", str(path)])
    assert result.exit_code == 0
    assert "Updated device hl7rcv" in result.stdout

    result = runner.invoke(cli.app, ["registry", "list"])
    assert result.stdout.strip() == "HL7RCV^DCM4CHEE"

    result = runner.invoke(cli.app, ["show", "hl7rcv"])
    assert result.exit_code == 0
    assert "hl7FwdApplicationName:" in result.stdout
    assert "- DST^FAC" in result.stdout

    result = runner.invoke(cli.app, ["remove", "hl7rcv"])
    assert result.exit_code == 0
    result = runner.invoke(cli.app, ["registry", "list"])
    assert "No HL7 application names registered" in result.stdout
