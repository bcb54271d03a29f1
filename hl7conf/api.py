"""Stable public API for building tooling on top of hl7conf.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from hl7conf.core.application import HL7Application, HL7DeviceExtension, parse_msh
from hl7conf.core.engine import HL7Configuration
from hl7conf.core.errors import (
    ApplicationNotFoundError,
    ApplicationOwnershipError,
    ApplicationStateError,
    ConfigurationError,
    DeviceDescriptionError,
    DeviceNotFoundError,
    DuplicateApplicationError,
    ExtensionLoadError,
    ExtensionValidationError,
    HL7ApplicationAlreadyExistsError,
    Hl7confError,
    UnresolvedReferenceError,
)
from hl7conf.core.extensions import AttributeFacet, FacetAttribute, FacetDefinition, HL7ConfigurationExtension
from hl7conf.core.model import AckCode, AdmissionResult, Connection, Device, HL7MessageListener, Tristate
from hl7conf.core.service import HL7ConfigService
from hl7conf.core.settings import Settings
from hl7conf.directory.base import DirectoryAdapter
from hl7conf.directory.memory import InMemoryDirectory

__all__ = [
    "Hl7confError",
    "ConfigurationError",
    "HL7ApplicationAlreadyExistsError",
    "UnresolvedReferenceError",
    "DeviceNotFoundError",
    "ApplicationNotFoundError",
    "ApplicationStateError",
    "ApplicationOwnershipError",
    "DuplicateApplicationError",
    "ExtensionLoadError",
    "ExtensionValidationError",
    "DeviceDescriptionError",
    "AckCode",
    "AdmissionResult",
    "Connection",
    "Device",
    "HL7Application",
    "HL7DeviceExtension",
    "HL7MessageListener",
    "Tristate",
    "HL7Configuration",
    "HL7ConfigurationExtension",
    "AttributeFacet",
    "FacetAttribute",
    "FacetDefinition",
    "DirectoryAdapter",
    "InMemoryDirectory",
    "Settings",
    "parse_msh",
    "Client",
]


class Client:
    """Public client for HL7 application configuration.

    A `Client` wraps settings, extension loading, device persistence and the
    unique application names registry behind a stable API intended for
    third-party tools (provisioning scripts, admin UIs, services).
    """

    def __init__(
        self,
        *,
        directory: DirectoryAdapter | None = None,
        settings: Settings | None = None,
        extensions: Iterable[HL7ConfigurationExtension] | None = None,
    ) -> None:
        self._service = HL7ConfigService(directory=directory, settings=settings, extensions=extensions)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def facets(self) -> dict[str, FacetDefinition]:
        return dict(self._service.facets)

    def list_devices(self) -> list[str]:
        return self._service.list_devices()

    def load_device(self, name: str) -> Device:
        return self._service.load_device(name)

    def apply_device(self, device: Device) -> bool:
        return self._service.apply(device)

    def remove_device(self, name: str) -> None:
        self._service.remove(name)

    def find_application(self, name: str) -> HL7Application:
        return self._service.find_application(name)

    def register_application(self, name: str) -> bool:
        return self._service.register_application(name)

    def unregister_application(self, name: str) -> None:
        self._service.unregister_application(name)

    def list_registered_names(self) -> Sequence[str]:
        return self._service.list_registered_names()
