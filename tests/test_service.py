from __future__ import annotations

from pathlib import Path

import pytest

from conftest import ARCHIVE, FORWARD, ROOT_DN
from hl7conf.core.application import HL7Application, HL7DeviceExtension
from hl7conf.core.errors import (
    ApplicationNotFoundError,
    DeviceNotFoundError,
    HL7ApplicationAlreadyExistsError,
    UnresolvedReferenceError,
)
from hl7conf.core.extensions import AttributeFacet
from hl7conf.core.model import Connection, Device, Tristate
from hl7conf.core.service import HL7ConfigService
from hl7conf.core.settings import Settings
from hl7conf.directory.memory import InMemoryDirectory


def _service(directory: InMemoryDirectory | None = None) -> HL7ConfigService:
    settings = Settings(configuration_root=ROOT_DN, base_dn="dc=example,dc=com", store_path=Path("directory.yaml"))
    return HL7ConfigService(
        directory=directory or InMemoryDirectory(),
        settings=settings,
        extensions=[AttributeFacet(ARCHIVE), AttributeFacet(FORWARD)],
    )


def _device(name: str = "hl7rcv", *app_names: str) -> Device:
    device = Device(name=name, connections=[Connection(common_name="hl7", port=2575)])
    ext = HL7DeviceExtension()
    device.add_hl7_extension(ext)
    for app_name in app_names or ("HL7RCV",):
        app = HL7Application(app_name)
        app.accepted_message_types = ["ADT^A01"]
        app.add_connection(device.connections[0])
        ext.add_application(app)
    return device


def _app(device: Device, name: str) -> HL7Application:
    assert device.hl7 is not None
    app = device.hl7.get_application(name)
    assert app is not None
    return app


def test_persist_and_load_device() -> None:
    service = _service()
    device = _device()
    app = _app(device, "HL7RCV")
    app.facets = {"forward": {"hl7FwdApplicationName": ("DST^FAC",)}}

    service.persist(device)

    assert service.list_devices() == ["hl7rcv"]
    loaded = service.load_device("hl7rcv")
    assert loaded.installed is True
    assert loaded.connections == [Connection(common_name="hl7", port=2575)]
    assert loaded.hl7 is not None
    loaded_app = loaded.hl7.get_application("HL7RCV")
    assert loaded_app is not None
    assert loaded_app.connections == loaded.connections
    assert loaded_app.facets["forward"]["hl7FwdApplicationName"] == ("DST^FAC",)
    assert service.list_registered_names() == ["HL7RCV"]


def test_list_devices_on_empty_directory() -> None:
    assert _service().list_devices() == []


def test_load_missing_device() -> None:
    with pytest.raises(DeviceNotFoundError):
        _service().load_device("nope")


def test_persist_collision_leaves_no_trace() -> None:
    directory = InMemoryDirectory()
    service = _service(directory)
    service.persist(_device("first", "A"))
    before = directory.dump()

    with pytest.raises(HL7ApplicationAlreadyExistsError):
        service.persist(_device("second", "B", "A"))

    assert directory.dump() == before
    assert service.list_devices() == ["first"]
    assert service.list_registered_names() == ["A"]


def test_persist_failure_after_registration_rolls_back() -> None:
    directory = InMemoryDirectory()
    service = _service(directory)
    device = _device("dev", "A")
    app = _app(device, "A")
    app.add_connection(Connection(common_name="undeclared"))

    with pytest.raises(UnresolvedReferenceError):
        service.persist(device)

    assert service.list_devices() == []
    assert service.list_registered_names() == []


def test_apply_creates_then_merges() -> None:
    service = _service()
    assert service.apply(_device("dev", "A", "B")) is True

    updated = _device("dev", "B", "C")
    updated.installed = False
    _app(updated, "B").installed = Tristate.FALSE
    assert service.apply(updated) is False

    loaded = service.load_device("dev")
    assert loaded.installed is False
    assert loaded.hl7 is not None
    assert loaded.hl7.application_names == ("B", "C")
    assert sorted(service.list_registered_names()) == ["B", "C"]


def test_merge_replaces_connections() -> None:
    service = _service()
    service.persist(_device("dev", "A"))

    updated = Device(name="dev", connections=[Connection(common_name="mllp", hostname="hl7.example.com", port=2576)])
    ext = HL7DeviceExtension()
    updated.add_hl7_extension(ext)
    app = HL7Application("A")
    app.accepted_message_types = ["ADT^A01"]
    app.add_connection(updated.connections[0])
    ext.add_application(app)
    service.merge(updated)

    loaded = service.load_device("dev")
    assert loaded.connections == updated.connections
    assert loaded.hl7 is not None
    loaded_app = loaded.hl7.get_application("A")
    assert loaded_app is not None
    assert loaded_app.connections == loaded.connections


def test_merge_collision_keeps_stored_state() -> None:
    directory = InMemoryDirectory()
    service = _service(directory)
    service.persist(_device("first", "A"))
    service.persist(_device("second", "B"))
    before = directory.dump()

    with pytest.raises(HL7ApplicationAlreadyExistsError):
        service.merge(_device("second", "B", "A"))

    assert directory.dump() == before
    assert sorted(service.list_registered_names()) == ["A", "B"]


def test_merge_collision_writes_nothing_at_device_level() -> None:
    directory = InMemoryDirectory()
    service = _service(directory)
    service.persist(_device("first", "A"))
    service.persist(_device("second", "B"))
    before = directory.dump()

    changed = _device("second", "B", "A")
    changed.installed = False
    changed.add_connection(Connection(common_name="extra", port=2576))
    with pytest.raises(HL7ApplicationAlreadyExistsError):
        service.merge(changed)

    assert directory.dump() == before
    assert not directory.exists(f"cn=extra,{service.device_dn('second')}")
    assert service.load_device("second").installed is True
    assert sorted(service.list_registered_names()) == ["A", "B"]


def test_remove_device_releases_names() -> None:
    service = _service()
    service.persist(_device("dev", "A", "*"))
    service.persist(_device("other", "B"))

    service.remove("dev")

    assert service.list_devices() == ["other"]
    assert service.list_registered_names() == ["B"]
    with pytest.raises(DeviceNotFoundError):
        service.remove("dev")


def test_find_application() -> None:
    service = _service()
    service.persist(_device("dev", "A", "B"))

    app = service.find_application("B")
    assert app.name == "B"
    assert app.device is not None
    assert app.device.name == "dev"
    assert app.accepted_message_types == ("ADT^A01",)

    with pytest.raises(ApplicationNotFoundError):
        service.find_application("Z")


def test_registry_passthrough() -> None:
    service = _service()
    assert service.register_application("X") is True
    assert service.register_application("X") is False
    service.unregister_application("X")
    assert service.list_registered_names() == []


def test_default_directory_is_yaml_file(tmp_path: Path) -> None:
    settings = Settings(configuration_root=ROOT_DN, base_dn="dc=example,dc=com", store_path=tmp_path / "d.yaml")
    service = HL7ConfigService(settings=settings, extensions=[])
    service.persist(_device("dev", "A"))

    reopened = HL7ConfigService(settings=settings, extensions=[])
    assert reopened.list_devices() == ["dev"]
    assert reopened.list_registered_names() == ["A"]
