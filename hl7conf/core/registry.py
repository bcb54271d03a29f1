"""Registry of globally unique HL7 application names."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from hl7conf.core.dn import dn_of
from hl7conf.core.errors import (
    ConfigurationError,
    DirectoryError,
    HL7ApplicationAlreadyExistsError,
    NameAlreadyBoundError,
    NameNotFoundError,
)
from hl7conf.core.store import ConfigurationRoot, translate_errors
from hl7conf.directory.base import DirectoryAdapter

REGISTRY_CN = "Unique HL7 Application Names Registry"
REGISTRY_ROOT_CLASS = "hl7UniqueApplicationNamesRegistryRoot"
UNIQUE_NAME_CLASS = "hl7UniqueApplicationName"
LOGGER = logging.getLogger(__name__)


class RegistryState(Enum):
    UNKNOWN = "unknown"
    CONFIRMED = "confirmed"


class NameRegistry:
    """One reservation entry per registered name beneath a lazily created root.

    Presence of the registry root is cached once confirmed; recomputing it is
    idempotent so concurrent first use only costs a redundant existence check.
    """

    def __init__(self, directory: DirectoryAdapter, root: ConfigurationRoot) -> None:
        self.directory = directory
        self.root = root
        self.state = RegistryState.UNKNOWN

    @property
    def dn(self) -> str:
        return dn_of("cn", REGISTRY_CN, self.root.dn)

    def entry_dn(self, name: str) -> str:
        return dn_of("hl7ApplicationName", name, self.dn)

    def _ensure_exists(self) -> None:
        if self.state is RegistryState.CONFIRMED:
            return
        self.root.ensure_exists()
        with translate_errors(f"Creating registry {self.dn}"):
            if not self.directory.exists(self.dn):
                try:
                    self.directory.create_entry(
                        self.dn, {"objectclass": [REGISTRY_ROOT_CLASS], "cn": [REGISTRY_CN]}
                    )
                    LOGGER.info("Created HL7 application names registry %s", self.dn)
                except NameAlreadyBoundError:
                    pass
        self.state = RegistryState.CONFIRMED

    def exists(self) -> bool:
        if self.state is RegistryState.CONFIRMED:
            return True
        if not self.root.exists():
            return False
        with translate_errors(f"Checking registry {self.dn}"):
            if not self.directory.exists(self.dn):
                return False
        self.state = RegistryState.CONFIRMED
        return True

    def register_name(self, name: str) -> str:
        """Reserve ``name`` and return the reservation DN.

        Raises :class:`HL7ApplicationAlreadyExistsError` if it is taken.
        """
        self._ensure_exists()
        dn = self.entry_dn(name)
        try:
            self.directory.create_entry(
                dn, {"objectclass": [UNIQUE_NAME_CLASS], "hl7ApplicationName": [name]}
            )
        except NameAlreadyBoundError as exc:
            raise HL7ApplicationAlreadyExistsError(f"HL7 Application '{name}' already exists") from exc
        except DirectoryError as exc:
            raise ConfigurationError(f"Registering HL7 Application '{name}' failed: {exc}") from exc
        LOGGER.info("Registered HL7 application name %s", name)
        return dn

    def register(self, name: str) -> bool:
        try:
            self.register_name(name)
        except HL7ApplicationAlreadyExistsError:
            return False
        return True

    def unregister(self, name: str) -> None:
        if self.exists():
            self.unregister_dns([self.entry_dn(name)])

    def unregister_dns(self, dns: Iterable[str]) -> None:
        for dn in dns:
            try:
                self.directory.destroy_entry(dn)
            except NameNotFoundError:
                continue
            except DirectoryError as exc:
                raise ConfigurationError(f"Unregistering {dn} failed: {exc}") from exc
            LOGGER.info("Unregistered %s", dn)

    def list_names(self) -> list[str]:
        if not self.exists():
            return []
        with translate_errors(f"Listing registry {self.dn}"):
            return self.directory.list_child_names(
                self.dn, f"(objectclass={UNIQUE_NAME_CLASS})", "hl7ApplicationName"
            )
