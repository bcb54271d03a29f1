"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from hl7conf.core.application import HL7Application
from hl7conf.core.attributes import (
    connection_dn,
    format_boolean,
    store_diff_object,
    string_value,
    tristate_value,
)
from hl7conf.core.dn import normalize_dn, parent_of, parse_rdn, rdn_of
from hl7conf.core.engine import HL7Configuration
from hl7conf.core.errors import ApplicationNotFoundError, ConfigurationError, DeviceNotFoundError
from hl7conf.core.extension_loader import load_extensions
from hl7conf.core.extensions import AttributeFacet, FacetDefinition, HL7ConfigurationExtension
from hl7conf.core.model import Connection, Device
from hl7conf.core.settings import Settings, load_settings
from hl7conf.core.store import ConfigurationRoot, translate_errors
from hl7conf.directory.base import Attributes, DirectoryAdapter, ModificationItem, Scope
from hl7conf.directory.yaml_file import YAMLFileDirectory

DEVICE_CLASS = "dicomDevice"
CONNECTION_CLASS = "dicomNetworkConnection"
LOGGER = logging.getLogger(__name__)


class HL7ConfigService:
    def __init__(
        self,
        *,
        directory: DirectoryAdapter | None = None,
        settings: Settings | None = None,
        extensions: Iterable[HL7ConfigurationExtension] | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        if extensions is None:
            loaded = load_extensions()
            self.facets: dict[str, FacetDefinition] = loaded.definitions
            self.load_warnings = loaded.warnings
            extensions = [AttributeFacet(definition) for definition in loaded.definitions.values()]
        else:
            extensions = list(extensions)
            self.facets = {ext.definition.id: ext.definition for ext in extensions if isinstance(ext, AttributeFacet)}
            self.load_warnings = ()
        self.directory = directory or YAMLFileDirectory(
            self.settings.store_path, suffixes=(self.settings.base_dn,)
        )
        self.root = ConfigurationRoot(self.directory, self.settings.configuration_root)
        self.config = HL7Configuration(self.directory, self.root, extensions=extensions)

    def device_dn(self, name: str) -> str:
        return self.root.device_dn(name)

    def device_exists(self, name: str) -> bool:
        with translate_errors(f"Checking device {name}"):
            return self.directory.exists(self.device_dn(name))

    def list_devices(self) -> list[str]:
        with translate_errors("Listing devices"):
            if not self.directory.exists(self.root.devices_dn):
                return []
            return sorted(
                self.directory.list_child_names(
                    self.root.devices_dn, f"(objectclass={DEVICE_CLASS})", "dicomDeviceName"
                )
            )

    def load_device(self, name: str) -> Device:
        if not self.device_exists(name):
            raise DeviceNotFoundError(f"Device '{name}' not found")
        return self._load_device_at(self.device_dn(name))

    def _load_device_at(self, device_dn: str) -> Device:
        with translate_errors(f"Loading device {device_dn}"):
            attrs = self._lookup(device_dn)
            device = Device(
                name=string_value(attrs, "dicomDeviceName") or parse_rdn(rdn_of(device_dn))[0][1],
                installed=tristate_value(attrs, "dicomInstalled").resolve(True),
            )
            with self.directory.search(device_dn, f"(objectclass={CONNECTION_CLASS})") as cursor:
                for result in cursor:
                    device.add_connection(_connection_from(result.attributes))
        self.config.load_childs(device, device_dn)
        return device

    def _lookup(self, dn: str) -> Attributes:
        with self.directory.search(dn, "(objectclass=*)", scope=Scope.BASE) as cursor:
            for result in cursor:
                return result.attributes
        raise DeviceNotFoundError(f"No entry at {dn}")

    def persist(self, device: Device) -> None:
        self.root.ensure_exists()
        device_dn = self.device_dn(device.name)
        dns: list[str] = []
        try:
            self.config.register(device, dns)
            self.config.create_entry(device_dn, _device_attributes(device))
            try:
                for conn in device.connections:
                    self.config.create_entry(connection_dn(conn, device_dn), _connection_attributes(conn))
                self.config.store_childs(device_dn, device)
            except Exception:
                self.config.destroy_subtree(device_dn)
                raise
        except Exception:
            if dns:
                LOGGER.warning("Persisting device %s failed; releasing %d name reservation(s)", device.name, len(dns))
                self.config.unregister_dns(dns)
            raise
        LOGGER.info("Persisted device %s", device.name)

    def merge(self, device: Device) -> None:
        prev = self.load_device(device.name)
        device_dn = self.device_dn(device.name)
        dns: list[str] = []
        try:
            self.config.register_diff(prev, device, dns)
            self._merge_device_entry(prev, device, device_dn)
            self.config.merge_childs(prev, device, device_dn)
        except Exception:
            self.config.release_reservations(dns)
            raise
        self.config.unregister_vanished(prev, device)
        for conn in _removed_connections(prev, device, device_dn):
            self.config.destroy_subtree(connection_dn(conn, device_dn))
        LOGGER.info("Merged device %s", device.name)

    def _merge_device_entry(self, prev: Device, device: Device, device_dn: str) -> None:
        mods: list[ModificationItem] = []
        store_diff_object(
            mods,
            "dicomInstalled",
            format_boolean(prev.installed),
            format_boolean(device.installed),
        )
        self.config.modify_attributes(device_dn, mods)

        prev_conns = {normalize_dn(connection_dn(c, device_dn)): c for c in prev.connections}
        for conn in device.connections:
            key = normalize_dn(connection_dn(conn, device_dn))
            if key not in prev_conns:
                self.config.create_entry(connection_dn(conn, device_dn), _connection_attributes(conn))
            elif prev_conns[key] != conn:
                conn_mods: list[ModificationItem] = []
                old = prev_conns[key]
                store_diff_object(conn_mods, "dicomHostname", old.hostname, conn.hostname)
                store_diff_object(
                    conn_mods,
                    "dicomPort",
                    str(old.port) if old.port else None,
                    str(conn.port) if conn.port else None,
                )
                self.config.modify_attributes(connection_dn(conn, device_dn), conn_mods)

    def apply(self, device: Device) -> bool:
        """Persist a new device or merge an existing one; return True if created."""
        if self.device_exists(device.name):
            self.merge(device)
            return False
        self.persist(device)
        return True

    def remove(self, name: str) -> None:
        if not self.device_exists(name):
            raise DeviceNotFoundError(f"Device '{name}' not found")
        device_dn = self.device_dn(name)
        dns: list[str] = []
        self.config.mark_device_for_unregister(device_dn, dns)
        self.config.destroy_subtree(device_dn)
        self.config.unregister_dns(dns)
        LOGGER.info("Removed device %s", name)

    def find_application(self, name: str) -> HL7Application:
        app_dn = self.config.find_application_dn(name)
        device = self._load_device_at(parent_of(app_dn))
        app = device.hl7.get_application(name) if device.hl7 is not None else None
        if app is None:
            raise ApplicationNotFoundError(f"HL7 Application '{name}' not found")
        return app

    def register_application(self, name: str) -> bool:
        return self.config.register_application(name)

    def unregister_application(self, name: str) -> None:
        self.config.unregister_application(name)

    def list_registered_names(self) -> list[str]:
        return self.config.list_registered_names()


def _device_attributes(device: Device) -> Attributes:
    return {
        "objectclass": [DEVICE_CLASS],
        "dicomDeviceName": [device.name],
        "dicomInstalled": [format_boolean(device.installed)],
    }


def _connection_attributes(conn: Connection) -> Attributes:
    attrs: Attributes = {"objectclass": [CONNECTION_CLASS], "dicomHostname": [conn.hostname]}
    if conn.common_name:
        attrs["cn"] = [conn.common_name]
    if conn.port:
        attrs["dicomPort"] = [str(conn.port)]
    return attrs


def _connection_from(attrs: Attributes) -> Connection:
    port = string_value(attrs, "dicomPort")
    try:
        return Connection(
            common_name=string_value(attrs, "cn"),
            hostname=string_value(attrs, "dicomHostname", "localhost") or "localhost",
            port=int(port) if port else None,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid dicomPort '{port}'") from exc


def _removed_connections(prev: Device, device: Device, device_dn: str) -> list[Connection]:
    kept = {normalize_dn(connection_dn(c, device_dn)) for c in device.connections}
    return [c for c in prev.connections if normalize_dn(connection_dn(c, device_dn)) not in kept]
