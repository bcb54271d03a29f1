"""HL7 application endpoints and the per-device collection holding them."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from hl7conf.core.errors import (
    ApplicationOwnershipError,
    ApplicationStateError,
    DuplicateApplicationError,
)
from hl7conf.core.model import AckCode, AdmissionResult, Connection, Device, HL7MessageListener, Tristate

DEFAULT_CHARACTER_SET = "ASCII"
WILDCARD_NAME = "*"


def _ordered_unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def parse_msh(message: bytes, encoding: str = "ascii") -> list[str]:
    """Split the MSH segment of an ER7 message into fields.

    Index ``n`` holds MSH-(n+1): ``msh[2]`` is the sending application,
    ``msh[3]`` the sending facility and ``msh[8]`` the message type.
    """
    text = message.decode(encoding, errors="replace")
    segment = text.replace("\n", "\r").split("\r", 1)[0]
    if not segment.startswith("MSH") or len(segment) < 8:
        raise ValueError("Message does not start with an MSH segment")
    return segment.split(segment[3])


def sending_application(msh: Sequence[str]) -> str:
    return f"{_field(msh, 2)}^{_field(msh, 3)}"


def message_type(msh: Sequence[str]) -> str:
    component_sep = msh[1][0] if len(msh) > 1 and msh[1] else "^"
    components = _field(msh, 8).split(component_sep)
    return "^".join(c for c in components[:2] if c)


def _field(msh: Sequence[str], index: int) -> str:
    return msh[index] if index < len(msh) else ""


class HL7Application:
    def __init__(self, name: str) -> None:
        self._owner: HL7DeviceExtension | None = None
        self._name = ""
        self._installed = Tristate.UNSET
        self._character_set: str | None = None
        self._accepted_sending_applications: tuple[str, ...] = ()
        self._accepted_message_types: tuple[str, ...] = ()
        self._other_application_names: tuple[str, ...] = ()
        self.connections: list[Connection] = []
        self.facets: dict[str, dict[str, Any]] = {}
        self._listener: HL7MessageListener | None = None
        self.name = name

    def __repr__(self) -> str:
        return f"HL7Application({self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, name: str) -> None:
        if not name:
            raise ApplicationStateError("HL7 application name cannot be empty")
        owner = self._owner
        if owner is not None and name != self._name:
            owner.rename_application(self._name, name)
        self._name = name

    @property
    def owner(self) -> HL7DeviceExtension | None:
        return self._owner

    @property
    def device(self) -> Device | None:
        return self._owner.device if self._owner is not None else None

    def attach(self, owner: HL7DeviceExtension) -> None:
        if self._owner is not None and self._owner is not owner:
            raise ApplicationOwnershipError(f"HL7 application '{self._name}' is already owned")
        self._owner = owner

    def detach(self) -> None:
        self._owner = None

    @property
    def accepted_sending_applications(self) -> tuple[str, ...]:
        return self._accepted_sending_applications

    @accepted_sending_applications.setter
    def accepted_sending_applications(self, values: Iterable[str]) -> None:
        self._accepted_sending_applications = _ordered_unique(values)

    @property
    def accepted_message_types(self) -> tuple[str, ...]:
        return self._accepted_message_types

    @accepted_message_types.setter
    def accepted_message_types(self, values: Iterable[str]) -> None:
        self._accepted_message_types = _ordered_unique(values)

    @property
    def other_application_names(self) -> tuple[str, ...]:
        return self._other_application_names

    @other_application_names.setter
    def other_application_names(self, values: Iterable[str]) -> None:
        self._other_application_names = _ordered_unique(values)

    @property
    def character_set(self) -> str:
        return self._character_set or DEFAULT_CHARACTER_SET

    @character_set.setter
    def character_set(self, value: str | None) -> None:
        self._character_set = value or None

    @property
    def installed(self) -> Tristate:
        return self._installed

    @installed.setter
    def installed(self, value: Tristate | bool | None) -> None:
        state = Tristate.of(value)
        device = self.device
        if state is Tristate.TRUE and device is not None and not device.installed:
            raise ApplicationStateError(
                f"Cannot install HL7 application '{self._name}': device '{device.name}' is not installed"
            )
        self._installed = state

    @property
    def is_installed(self) -> bool:
        device = self.device
        return device is not None and device.installed and self._installed.resolve(True)

    @property
    def message_listener(self) -> HL7MessageListener | None:
        if self._listener is not None:
            return self._listener
        return self._owner.message_listener if self._owner is not None else None

    @message_listener.setter
    def message_listener(self, listener: HL7MessageListener | None) -> None:
        self._listener = listener

    def add_connection(self, conn: Connection) -> None:
        self.connections.append(conn)

    def remove_connection(self, conn: Connection) -> bool:
        if conn not in self.connections:
            return False
        self.connections.remove(conn)
        return True

    def on_message(self, msh: Sequence[str], message: bytes, conn: Connection) -> AdmissionResult:
        if not (self.is_installed and conn in self.connections):
            return AdmissionResult(AckCode.AR, "Receiving Application not recognized")
        if self._accepted_sending_applications and (
            sending_application(msh) not in self._accepted_sending_applications
        ):
            return AdmissionResult(AckCode.AR, "Sending Application not recognized")
        if not (
            WILDCARD_NAME in self._accepted_message_types
            or message_type(msh) in self._accepted_message_types
        ):
            return AdmissionResult(AckCode.AR, "Message Type not supported")

        listener = self.message_listener
        if listener is None:
            return AdmissionResult(AckCode.AE, "No HL7 Message Listener configured")
        return AdmissionResult(AckCode.AA, response=listener.on_message(self, msh, message))


class HL7DeviceExtension:
    """HL7 applications of one device, keyed by name in insertion order."""

    def __init__(self) -> None:
        self.device: Device | None = None
        self.message_listener: HL7MessageListener | None = None
        self._apps: dict[str, HL7Application] = {}

    def __len__(self) -> int:
        return len(self._apps)

    def add_application(self, app: HL7Application) -> None:
        if app.name in self._apps:
            raise DuplicateApplicationError(f"HL7 application '{app.name}' already exists on this device")
        device = self.device
        if app.installed is Tristate.TRUE and device is not None and not device.installed:
            raise ApplicationStateError(
                f"Cannot add installed HL7 application '{app.name}': device '{device.name}' is not installed"
            )
        app.attach(self)
        self._apps[app.name] = app

    def remove_application(self, name: str) -> HL7Application | None:
        app = self._apps.pop(name, None)
        if app is not None:
            app.detach()
        return app

    def rename_application(self, old: str, new: str) -> None:
        if new in self._apps:
            raise DuplicateApplicationError(f"HL7 application '{new}' already exists on this device")
        self._apps = {(new if key == old else key): app for key, app in self._apps.items()}

    def get_application(self, name: str) -> HL7Application | None:
        return self._apps.get(name)

    def contains_application(self, name: str) -> bool:
        return name in self._apps

    @property
    def application_names(self) -> tuple[str, ...]:
        return tuple(self._apps)

    @property
    def applications(self) -> list[HL7Application]:
        return list(self._apps.values())
