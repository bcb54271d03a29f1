"""Core data models shared by the engine, loaders, service and CLI."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from hl7conf.core.errors import ApplicationOwnershipError

if TYPE_CHECKING:
    from hl7conf.core.application import HL7Application, HL7DeviceExtension


class Tristate(Enum):
    UNSET = None
    TRUE = True
    FALSE = False

    @classmethod
    def of(cls, value: Tristate | bool | None) -> Tristate:
        if isinstance(value, Tristate):
            return value
        return cls(value)

    def resolve(self, default: bool) -> bool:
        return default if self is Tristate.UNSET else bool(self.value)


class AckCode(str, Enum):
    AA = "AA"
    AR = "AR"
    AE = "AE"


@dataclass(frozen=True)
class AdmissionResult:
    ack: AckCode
    text: str | None = None
    response: Any = None

    @property
    def accepted(self) -> bool:
        return self.ack is AckCode.AA


class HL7MessageListener(Protocol):
    def on_message(self, app: HL7Application, msh: Sequence[str], message: bytes) -> Any:
        """Handle an admitted message and return the response payload."""


@dataclass(frozen=True)
class Connection:
    common_name: str | None = None
    hostname: str = "localhost"
    port: int | None = None


@dataclass(eq=False)
class Device:
    name: str
    installed: bool = True
    connections: list[Connection] = field(default_factory=list)
    _hl7: HL7DeviceExtension | None = field(default=None, init=False, repr=False)

    @property
    def hl7(self) -> HL7DeviceExtension | None:
        return self._hl7

    def add_hl7_extension(self, ext: HL7DeviceExtension) -> None:
        if ext.device is not None and ext.device is not self:
            raise ApplicationOwnershipError(f"HL7 extension already owned by device '{ext.device.name}'")
        if self._hl7 is not None and self._hl7 is not ext:
            raise ApplicationOwnershipError(f"Device '{self.name}' already has an HL7 extension")
        ext.device = self
        self._hl7 = ext

    def remove_hl7_extension(self) -> HL7DeviceExtension | None:
        ext = self._hl7
        if ext is not None:
            ext.device = None
        self._hl7 = None
        return ext

    def add_connection(self, conn: Connection) -> Connection:
        self.connections.append(conn)
        return conn
