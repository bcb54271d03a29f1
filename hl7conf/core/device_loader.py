"""YAML device descriptions used by the CLI ``apply`` and ``show`` commands."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from hl7conf.core.application import HL7Application, HL7DeviceExtension
from hl7conf.core.errors import ApplicationStateError, DeviceDescriptionError
from hl7conf.core.extensions import FacetDefinition
from hl7conf.core.model import Connection, Device, Tristate
from hl7conf.core.yaml_io import normalize_bool, read_yaml, validate


def _connection_key(conn: Connection) -> str:
    if conn.common_name:
        return conn.common_name
    return f"{conn.hostname}:{conn.port}" if conn.port else conn.hostname


def _build_facets(
    app_name: str,
    facets: Mapping[str, Mapping[str, Any]],
    definitions: Mapping[str, FacetDefinition],
) -> dict[str, dict[str, Any]]:
    result: dict[str, dict[str, Any]] = {}
    for facet_id, values in facets.items():
        definition = definitions.get(facet_id)
        if definition is None:
            available = ", ".join(sorted(definitions)) or "<none>"
            raise DeviceDescriptionError(
                f"HL7 application '{app_name}' uses unknown facet '{facet_id}'. Available: {available}"
            )
        declared = {attr.name: attr for attr in definition.attributes}
        facet: dict[str, Any] = {}
        for attr_name, value in values.items():
            attr = declared.get(attr_name)
            if attr is None:
                raise DeviceDescriptionError(
                    f"Facet '{facet_id}' of '{app_name}' does not declare attribute '{attr_name}'"
                )
            if attr.multi:
                facet[attr_name] = tuple(value) if isinstance(value, list) else (value,)
            elif isinstance(value, list):
                raise DeviceDescriptionError(f"Facet attribute '{facet_id}.{attr_name}' is single-valued")
            else:
                facet[attr_name] = value
        result[facet_id] = facet
    return result


def device_from_document(
    doc: dict[str, Any],
    source: object,
    definitions: Mapping[str, FacetDefinition],
) -> Device:
    validate(doc, "device.schema.json", source, error=DeviceDescriptionError)

    device = Device(
        name=doc["name"],
        installed=normalize_bool(doc.get("installed", True), context=f"{doc['name']}.installed", error=DeviceDescriptionError),
    )
    by_key: dict[str, Connection] = {}
    for spec in doc.get("connections", []):
        conn = device.add_connection(
            Connection(common_name=spec.get("cn"), hostname=spec["hostname"], port=spec.get("port"))
        )
        key = _connection_key(conn)
        if key in by_key:
            raise DeviceDescriptionError(f"Connection '{key}' is declared twice on device '{device.name}'")
        by_key[key] = conn

    apps = doc.get("hl7_applications", [])
    if not apps:
        return device

    hl7_ext = HL7DeviceExtension()
    device.add_hl7_extension(hl7_ext)
    for spec in apps:
        app = HL7Application(spec["name"])
        app.accepted_sending_applications = spec.get("accepted_sending_applications", [])
        app.accepted_message_types = spec.get("accepted_message_types", [])
        app.other_application_names = spec.get("other_application_names", [])
        app.character_set = spec.get("character_set")
        for ref in spec.get("connections", []):
            conn = by_key.get(ref)
            if conn is None:
                raise DeviceDescriptionError(
                    f"HL7 application '{app.name}' references unknown connection '{ref}'"
                )
            app.add_connection(conn)
        app.facets = _build_facets(app.name, spec.get("facets", {}), definitions)
        try:
            hl7_ext.add_application(app)
            if "installed" in spec:
                app.installed = normalize_bool(
                    spec["installed"], context=f"{app.name}.installed", error=DeviceDescriptionError
                )
        except ApplicationStateError as exc:
            raise DeviceDescriptionError(f"Invalid device description {source}: {exc}") from exc
    return device


def load_device_description(path: Path, definitions: Mapping[str, FacetDefinition]) -> Device:
    doc = read_yaml(path, read_error=DeviceDescriptionError, invalid_error=DeviceDescriptionError)
    return device_from_document(doc, path, definitions)


def device_to_document(device: Device) -> dict[str, Any]:
    doc: dict[str, Any] = {"name": device.name, "installed": device.installed}
    if device.connections:
        doc["connections"] = []
        for conn in device.connections:
            spec: dict[str, Any] = {"hostname": conn.hostname}
            if conn.common_name:
                spec["cn"] = conn.common_name
            if conn.port:
                spec["port"] = conn.port
            doc["connections"].append(spec)
    if device.hl7 is None:
        return doc

    doc["hl7_applications"] = []
    for app in device.hl7.applications:
        app_doc: dict[str, Any] = {"name": app.name}
        if app.accepted_sending_applications:
            app_doc["accepted_sending_applications"] = list(app.accepted_sending_applications)
        if app.accepted_message_types:
            app_doc["accepted_message_types"] = list(app.accepted_message_types)
        if app.other_application_names:
            app_doc["other_application_names"] = list(app.other_application_names)
        app_doc["character_set"] = app.character_set
        if app.installed is not Tristate.UNSET:
            app_doc["installed"] = app.installed.value
        if app.connections:
            app_doc["connections"] = [_connection_key(conn) for conn in app.connections]
        if app.facets:
            app_doc["facets"] = {
                facet_id: {k: list(v) if isinstance(v, tuple) else v for k, v in values.items() if v not in (None, ())}
                for facet_id, values in app.facets.items()
            }
        doc["hl7_applications"].append(app_doc)
    return doc
