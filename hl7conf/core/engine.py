"""Synchronization of HL7 applications with directory entries.

Each application of a device maps to one ``hl7ApplicationName=<name>`` entry
beneath the device entry, plus whatever nested entries the registered
extensions keep beneath it. Application names are additionally reserved in the
:class:`NameRegistry` so no two devices can claim the same name; the wildcard
application ``*`` is a per-device catch-all and never reserved.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Iterable, Sequence

from hl7conf.core.application import DEFAULT_CHARACTER_SET, WILDCARD_NAME, HL7Application, HL7DeviceExtension
from hl7conf.core.attributes import (
    CONNECTION_REFERENCE,
    connection_refs,
    find_connection,
    has_attribute,
    store_diff,
    store_diff_object,
    store_diff_refs,
    store_diff_tristate,
    store_not_default,
    store_not_empty,
    store_tristate,
    string_array,
    string_value,
    tristate_value,
)
from hl7conf.core.dn import dn_of, parse_rdn, rdn_of
from hl7conf.core.errors import ApplicationNotFoundError, NameNotFoundError
from hl7conf.core.extensions import HL7ConfigurationExtension
from hl7conf.core.model import Device
from hl7conf.core.registry import NameRegistry
from hl7conf.core.store import ConfigurationRoot, translate_errors
from hl7conf.directory.base import Attributes, DirectoryAdapter, ModificationItem, ModOp, Scope
from hl7conf.directory.filters import escape_filter_value

APPLICATION_CLASS = "hl7Application"
APPLICATION_FILTER = f"(objectclass={APPLICATION_CLASS})"
OTHER_NAMES = "hl7OtherApplicationName"
LEGACY_OTHER_NAMES = "dcmOtherApplicationNames"
LOGGER = logging.getLogger(__name__)


class HL7Configuration:
    def __init__(
        self,
        directory: DirectoryAdapter,
        root: ConfigurationRoot,
        *,
        extensions: Iterable[HL7ConfigurationExtension] = (),
    ) -> None:
        self.directory = directory
        self.root = root
        self.registry = NameRegistry(directory, root)
        self._extensions: list[HL7ConfigurationExtension] = []
        # applications loaded from entries that only carry LEGACY_OTHER_NAMES
        self._legacy_other_names: weakref.WeakSet[HL7Application] = weakref.WeakSet()
        for ext in extensions:
            self.add_extension(ext)

    @property
    def extensions(self) -> tuple[HL7ConfigurationExtension, ...]:
        return tuple(self._extensions)

    def add_extension(self, ext: HL7ConfigurationExtension) -> None:
        ext.bind(self)
        self._extensions.append(ext)

    def remove_extension(self, ext: HL7ConfigurationExtension) -> bool:
        if ext not in self._extensions:
            return False
        self._extensions.remove(ext)
        ext.bind(None)
        return True

    # Directory access used by the engine and by extensions.

    def create_entry(self, dn: str, attrs: Attributes) -> None:
        with translate_errors(f"Creating {dn}"):
            self.directory.create_entry(dn, attrs)

    def modify_attributes(self, dn: str, mods: Sequence[ModificationItem]) -> None:
        if not mods:
            return
        LOGGER.debug("Modifying %s: %s", dn, ", ".join(f"{m.op.value} {m.attribute}" for m in mods))
        with translate_errors(f"Modifying {dn}"):
            self.directory.modify_attributes(dn, mods)

    def destroy_subtree(self, dn: str) -> bool:
        with translate_errors(f"Removing {dn}"):
            try:
                self.directory.destroy_subtree(dn)
            except NameNotFoundError:
                return False
        LOGGER.info("Removed %s", dn)
        return True

    def search_attributes(self, base_dn: str, filter_expr: str) -> list[Attributes]:
        with translate_errors(f"Searching {base_dn}"), self.directory.search(base_dn, filter_expr) as cursor:
            return [result.attributes for result in cursor]

    # Registry.

    def register_application(self, name: str) -> bool:
        return self.registry.register(name)

    def unregister_application(self, name: str) -> None:
        self.registry.unregister(name)

    def list_registered_names(self) -> list[str]:
        return self.registry.list_names()

    def register(self, device: Device, dns: list[str]) -> None:
        ext = device.hl7
        if ext is None:
            return
        for name in ext.application_names:
            if name != WILDCARD_NAME:
                dns.append(self.registry.register_name(name))

    def register_diff(self, prev: Device, device: Device, dns: list[str]) -> None:
        prev_ext = prev.hl7
        if prev_ext is None:
            self.register(device, dns)
            return
        ext = device.hl7
        if ext is None:
            return
        for name in ext.application_names:
            if name != WILDCARD_NAME and not prev_ext.contains_application(name):
                dns.append(self.registry.register_name(name))

    def mark_for_unregister(self, prev: Device, device: Device, dns: list[str]) -> None:
        prev_ext = prev.hl7
        if prev_ext is None:
            return
        ext = device.hl7
        for name in prev_ext.application_names:
            if name != WILDCARD_NAME and (ext is None or not ext.contains_application(name)):
                dns.append(self.registry.entry_dn(name))

    def mark_device_for_unregister(self, device_dn: str, dns: list[str]) -> None:
        if not self.registry.exists():
            return
        with translate_errors(f"Searching {device_dn}"), self.directory.search(
            device_dn, APPLICATION_FILTER, []
        ) as cursor:
            for result in cursor:
                name = parse_rdn(result.name)[0][1]
                if name != WILDCARD_NAME:
                    dns.append(self.registry.entry_dn(name))

    def unregister_dns(self, dns: Iterable[str]) -> None:
        self.registry.unregister_dns(dns)

    def find_application_dn(self, name: str) -> str:
        filter_expr = f"(&{APPLICATION_FILTER}(hl7ApplicationName={escape_filter_value(name)}))"
        with translate_errors(f"Checking {self.root.devices_dn}"):
            if not self.directory.exists(self.root.devices_dn):
                raise ApplicationNotFoundError(f"HL7 Application '{name}' not found")
        with translate_errors(f"Searching HL7 application {name}"), self.directory.search(
            self.root.devices_dn, filter_expr, [], scope=Scope.SUBTREE
        ) as cursor:
            for result in cursor:
                return result.dn
        raise ApplicationNotFoundError(f"HL7 Application '{name}' not found")

    # Store.

    def application_dn(self, name: str, device_dn: str) -> str:
        return dn_of("hl7ApplicationName", name, device_dn)

    def store_childs(self, device_dn: str, device: Device) -> None:
        ext = device.hl7
        if ext is None:
            return
        prepared = [(app, self._store_to(app, device, device_dn)) for app in ext.applications]
        for app, attrs in prepared:
            self._create(app, device_dn, attrs)

    def _store(self, app: HL7Application, device: Device, device_dn: str) -> None:
        self._create(app, device_dn, self._store_to(app, device, device_dn))

    def _create(self, app: HL7Application, device_dn: str, attrs: Attributes) -> None:
        app_dn = self.application_dn(app.name, device_dn)
        self.create_entry(app_dn, attrs)
        LOGGER.info("Stored HL7 application %s", app_dn)
        for ext in self._extensions:
            ext.store_childs(app_dn, app)

    def _store_to(self, app: HL7Application, device: Device, device_dn: str) -> Attributes:
        attrs: Attributes = {"objectclass": [APPLICATION_CLASS]}
        store_not_default(attrs, "hl7ApplicationName", app.name, None)
        store_not_empty(attrs, "hl7AcceptedSendingApplication", app.accepted_sending_applications)
        store_not_empty(attrs, OTHER_NAMES, app.other_application_names)
        store_not_empty(attrs, "hl7AcceptedMessageType", app.accepted_message_types)
        store_not_default(attrs, "hl7DefaultCharacterSet", app.character_set, DEFAULT_CHARACTER_SET)
        store_not_empty(attrs, CONNECTION_REFERENCE, connection_refs(app.connections, device, device_dn))
        store_tristate(attrs, "dicomInstalled", app.installed)
        for ext in self._extensions:
            ext.store_to(app, device_dn, attrs)
        return attrs

    # Load.

    def load_childs(self, device: Device, device_dn: str) -> None:
        with translate_errors(f"Loading HL7 applications of {device_dn}"), self.directory.search(
            device_dn, APPLICATION_FILTER
        ) as cursor:
            hl7_ext: HL7DeviceExtension | None = None
            for result in cursor:
                if hl7_ext is None:
                    hl7_ext = device.hl7 if device.hl7 is not None else HL7DeviceExtension()
                    device.add_hl7_extension(hl7_ext)
                hl7_ext.add_application(self._load_application(result.attributes, result.dn, device, device_dn))

    def _load_application(self, attrs: Attributes, app_dn: str, device: Device, device_dn: str) -> HL7Application:
        name = string_value(attrs, "hl7ApplicationName") or parse_rdn(rdn_of(app_dn))[0][1]
        app = HL7Application(name)
        self._load_from(app, attrs)
        for conn_dn in string_array(attrs, CONNECTION_REFERENCE):
            app.add_connection(find_connection(conn_dn, device_dn, device))
        for ext in self._extensions:
            ext.load_childs(app, app_dn)
        return app

    def _load_from(self, app: HL7Application, attrs: Attributes) -> None:
        app.accepted_sending_applications = string_array(attrs, "hl7AcceptedSendingApplication")
        if has_attribute(attrs, OTHER_NAMES) or not has_attribute(attrs, LEGACY_OTHER_NAMES):
            app.other_application_names = string_array(attrs, OTHER_NAMES)
        else:
            LOGGER.warning(
                "HL7 application %s uses legacy attribute %s; rewrite it as %s",
                app.name,
                LEGACY_OTHER_NAMES,
                OTHER_NAMES,
            )
            app.other_application_names = string_array(attrs, LEGACY_OTHER_NAMES)
            self._legacy_other_names.add(app)
        app.accepted_message_types = string_array(attrs, "hl7AcceptedMessageType")
        app.character_set = string_value(attrs, "hl7DefaultCharacterSet", DEFAULT_CHARACTER_SET)
        app.installed = tristate_value(attrs, "dicomInstalled")
        for ext in self._extensions:
            ext.load_from(app, attrs)

    # Merge.

    def merge_childs(self, prev: Device, device: Device, device_dn: str) -> None:
        prev_ext, ext = prev.hl7, device.hl7
        if prev_ext is not None:
            for name in prev_ext.application_names:
                if ext is None or not ext.contains_application(name):
                    self.destroy_subtree(self.application_dn(name, device_dn))
        if ext is None:
            return
        for app in ext.applications:
            prev_app = prev_ext.get_application(app.name) if prev_ext is not None else None
            if prev_app is None:
                self._store(app, device, device_dn)
            else:
                self._merge(prev_app, prev, app, device, device_dn)

    def _merge(
        self,
        prev_app: HL7Application,
        prev: Device,
        app: HL7Application,
        device: Device,
        device_dn: str,
    ) -> None:
        app_dn = self.application_dn(app.name, device_dn)
        mods: list[ModificationItem] = []
        self._store_diffs(prev_app, prev, app, device, device_dn, mods)
        self.modify_attributes(app_dn, mods)
        self._legacy_other_names.discard(prev_app)
        for ext in self._extensions:
            ext.merge_childs(prev_app, app, app_dn)

    def _store_diffs(
        self,
        a: HL7Application,
        prev: Device,
        b: HL7Application,
        device: Device,
        device_dn: str,
        mods: list[ModificationItem],
    ) -> None:
        store_diff(mods, "hl7AcceptedSendingApplication", a.accepted_sending_applications, b.accepted_sending_applications)
        if a in self._legacy_other_names:
            mods.append(ModificationItem(ModOp.REMOVE, LEGACY_OTHER_NAMES))
            if b.other_application_names:
                mods.append(ModificationItem(ModOp.REPLACE, OTHER_NAMES, b.other_application_names))
        else:
            store_diff(mods, OTHER_NAMES, a.other_application_names, b.other_application_names)
        store_diff(mods, "hl7AcceptedMessageType", a.accepted_message_types, b.accepted_message_types)
        store_diff_object(mods, "hl7DefaultCharacterSet", a.character_set, b.character_set, DEFAULT_CHARACTER_SET)
        store_diff_refs(
            mods,
            connection_refs(a.connections, prev, device_dn),
            connection_refs(b.connections, device, device_dn),
        )
        store_diff_tristate(mods, "dicomInstalled", a.installed, b.installed)
        for ext in self._extensions:
            ext.store_diffs(a, b, mods)

    # Registry reconciliation in lockstep with entry changes.

    def persist_applications(self, device: Device, device_dn: str) -> None:
        """Register every name of ``device`` and store its application entries.

        Fresh reservations are released again if storing fails.
        """
        dns: list[str] = []
        try:
            self.register(device, dns)
            self.store_childs(device_dn, device)
        except Exception:
            self.release_reservations(dns)
            raise

    def merge_applications(self, prev: Device, device: Device, device_dn: str) -> None:
        dns: list[str] = []
        try:
            self.register_diff(prev, device, dns)
            self.merge_childs(prev, device, device_dn)
        except Exception:
            self.release_reservations(dns)
            raise
        self.unregister_vanished(prev, device)

    def unregister_vanished(self, prev: Device, device: Device) -> None:
        stale: list[str] = []
        self.mark_for_unregister(prev, device, stale)
        self.unregister_dns(stale)

    def release_reservations(self, dns: list[str]) -> None:
        if dns:
            LOGGER.warning("Releasing %d HL7 application name reservation(s) after failure", len(dns))
            self.unregister_dns(dns)
