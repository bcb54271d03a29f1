"""Search filter matching over trees parsed by ldap3."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence

from ldap3.core.exceptions import LDAPException
from ldap3.operation.search import (
    AND,
    MATCH_EQUAL,
    MATCH_PRESENT,
    MATCH_SUBSTRING,
    NOT,
    OR,
    ROOT,
    parse_filter as _ldap3_parse_filter,
)
from ldap3.utils.conv import escape_filter_chars, ldap_escape_to_bytes

from hl7conf.core.errors import DirectoryProtocolError

Predicate = Callable[[Mapping[str, Sequence[str]]], bool]


def escape_filter_value(value: str) -> str:
    return escape_filter_chars(value)


def _text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    return ldap_escape_to_bytes(value).decode("utf-8").lower()


def _values(entry: Mapping[str, Sequence[str]], attr: str) -> list[str]:
    wanted = attr.lower()
    for key, values in entry.items():
        if key.lower() == wanted:
            return [v.lower() for v in values]
    return []


def _substring_match(value: str, initial: str, parts: list[str], final: str) -> bool:
    if not value.startswith(initial):
        return False
    pos = len(initial)
    for part in parts:
        found = value.find(part, pos)
        if found < 0:
            return False
        pos = found + len(part)
    return len(value) - pos >= len(final) and value.endswith(final)


def _compile(node) -> Predicate:
    tag = node.tag
    if tag in (AND, OR):
        children = [_compile(child) for child in node.elements]
        combine = all if tag == AND else any
        return lambda entry: combine(child(entry) for child in children)
    if tag == NOT:
        if len(node.elements) != 1:
            raise DirectoryProtocolError("Negation takes exactly one filter")
        inner = _compile(node.elements[0])
        return lambda entry: not inner(entry)

    assertion = node.assertion or {}
    attr = assertion.get("attr", "")
    if not attr:
        raise DirectoryProtocolError("Filter item without attribute")
    if tag == MATCH_PRESENT:
        return lambda entry: bool(_values(entry, attr))
    if tag == MATCH_EQUAL:
        value = _text(assertion["value"])
        return lambda entry: value in _values(entry, attr)
    if tag == MATCH_SUBSTRING:
        initial = _text(assertion.get("initial"))
        parts = [_text(part) for part in assertion.get("any") or ()]
        final = _text(assertion.get("final"))
        return lambda entry: any(_substring_match(v, initial, parts, final) for v in _values(entry, attr))
    raise DirectoryProtocolError(f"Unsupported filter item on '{attr}'")


def parse_filter(text: str) -> Predicate:
    """Compile a filter string into a predicate over an attribute mapping."""
    try:
        root = _ldap3_parse_filter(text, None, False, False, None, False)
    except LDAPException as exc:
        raise DirectoryProtocolError(f"Invalid filter '{text}': {exc}") from exc
    if root.tag != ROOT or len(root.elements) != 1:
        raise DirectoryProtocolError(f"Invalid filter '{text}'")
    return _compile(root.elements[0])
