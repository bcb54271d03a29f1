"""Configuration root entries and directory error translation."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from hl7conf.core.dn import dn_of, parse_rdn, rdn_of
from hl7conf.core.errors import ConfigurationError, DirectoryError, NameAlreadyBoundError
from hl7conf.directory.base import DirectoryAdapter

DEVICES_RDN = "cn=Devices"
LOGGER = logging.getLogger(__name__)


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Re-raise adapter failures inside the block as :class:`ConfigurationError`."""
    try:
        yield
    except DirectoryError as exc:
        raise ConfigurationError(f"{action} failed: {exc}") from exc


class ConfigurationRoot:
    def __init__(self, directory: DirectoryAdapter, dn: str) -> None:
        self.directory = directory
        self.dn = dn

    @property
    def devices_dn(self) -> str:
        return f"{DEVICES_RDN},{self.dn}"

    def device_dn(self, name: str) -> str:
        return dn_of("dicomDeviceName", name, self.devices_dn)

    def exists(self) -> bool:
        with translate_errors(f"Checking configuration root {self.dn}"):
            return self.directory.exists(self.dn)

    def ensure_exists(self) -> None:
        cn = parse_rdn(rdn_of(self.dn))[0][1]
        self._ensure(self.dn, {"objectclass": ["dicomConfigurationRoot"], "cn": [cn]})
        self._ensure(self.devices_dn, {"objectclass": ["dicomDevicesRoot"], "cn": ["Devices"]})

    def _ensure(self, dn: str, attrs: dict[str, list[str]]) -> None:
        with translate_errors(f"Creating {dn}"):
            if self.directory.exists(dn):
                return
            try:
                self.directory.create_entry(dn, attrs)
            except NameAlreadyBoundError:
                return
        LOGGER.info("Created %s", dn)
