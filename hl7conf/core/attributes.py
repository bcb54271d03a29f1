"""Attribute mapping and diff helpers shared by the engine and extension facets."""

from __future__ import annotations

from collections.abc import Sequence

from hl7conf.core.dn import dn_of, escape_value, normalize_dn
from hl7conf.core.errors import UnresolvedReferenceError
from hl7conf.core.model import Connection, Device, Tristate
from hl7conf.directory.base import Attributes, ModificationItem, ModOp

CONNECTION_REFERENCE = "dicomNetworkConnectionReference"


def values_of(attrs: Attributes, name: str) -> list[str]:
    wanted = name.lower()
    for key, values in attrs.items():
        if key.lower() == wanted:
            return list(values)
    return []


def has_attribute(attrs: Attributes, name: str) -> bool:
    return bool(values_of(attrs, name))


def string_value(attrs: Attributes, name: str, default: str | None = None) -> str | None:
    values = values_of(attrs, name)
    return values[0] if values else default


def string_array(attrs: Attributes, name: str) -> tuple[str, ...]:
    return tuple(values_of(attrs, name))


def format_boolean(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def tristate_value(attrs: Attributes, name: str) -> Tristate:
    value = string_value(attrs, name)
    if value is None:
        return Tristate.UNSET
    return Tristate.TRUE if value.upper() == "TRUE" else Tristate.FALSE


def store_not_empty(attrs: Attributes, name: str, values: Sequence[str]) -> None:
    if values:
        attrs[name] = list(values)


def store_not_default(attrs: Attributes, name: str, value: str | None, default: str | None) -> None:
    if value is not None and value != default:
        attrs[name] = [value]


def store_tristate(attrs: Attributes, name: str, value: Tristate) -> None:
    if value is not Tristate.UNSET:
        attrs[name] = [format_boolean(bool(value.value))]


def connection_dn(conn: Connection, device_dn: str) -> str:
    if conn.common_name:
        return dn_of("cn", conn.common_name, device_dn)
    if conn.port:
        return f"dicomHostname={escape_value(conn.hostname)}+dicomPort={conn.port},{device_dn}"
    return dn_of("dicomHostname", conn.hostname, device_dn)


def connection_refs(conns: Sequence[Connection], device: Device, device_dn: str) -> list[str]:
    refs: list[str] = []
    for conn in conns:
        if conn not in device.connections:
            raise UnresolvedReferenceError(
                f"Connection {conn} is not declared on device '{device.name}'"
            )
        refs.append(connection_dn(conn, device_dn))
    return refs


def find_connection(conn_dn: str, device_dn: str, device: Device) -> Connection:
    wanted = normalize_dn(conn_dn)
    for conn in device.connections:
        if normalize_dn(connection_dn(conn, device_dn)) == wanted:
            return conn
    raise UnresolvedReferenceError(
        f"Connection reference {conn_dn} does not match any connection of device '{device.name}'"
    )


def store_diff(
    mods: list[ModificationItem],
    name: str,
    prev: Sequence[str],
    values: Sequence[str],
) -> None:
    if set(prev) == set(values):
        return
    if values:
        mods.append(ModificationItem(ModOp.REPLACE, name, tuple(values)))
    else:
        mods.append(ModificationItem(ModOp.REMOVE, name))


def store_diff_object(
    mods: list[ModificationItem],
    name: str,
    prev: str | None,
    value: str | None,
    default: str | None = None,
) -> None:
    prev_effective = prev if prev is not None else default
    effective = value if value is not None else default
    if prev_effective == effective:
        return
    if value is None or value == default:
        mods.append(ModificationItem(ModOp.REMOVE, name))
    else:
        mods.append(ModificationItem(ModOp.REPLACE, name, (value,)))


def store_diff_tristate(
    mods: list[ModificationItem],
    name: str,
    prev: Tristate,
    value: Tristate,
) -> None:
    if prev is value:
        return
    if value is Tristate.UNSET:
        mods.append(ModificationItem(ModOp.REMOVE, name))
    else:
        mods.append(ModificationItem(ModOp.REPLACE, name, (format_boolean(bool(value.value)),)))


def store_diff_refs(
    mods: list[ModificationItem],
    prev_refs: Sequence[str],
    refs: Sequence[str],
) -> None:
    if [normalize_dn(r) for r in prev_refs] == [normalize_dn(r) for r in refs]:
        return
    if refs:
        mods.append(ModificationItem(ModOp.REPLACE, CONNECTION_REFERENCE, tuple(refs)))
    else:
        mods.append(ModificationItem(ModOp.REMOVE, CONNECTION_REFERENCE))
