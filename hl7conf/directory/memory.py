"""In-memory directory adapter used for embedding and tests."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from hl7conf.core.dn import is_descendant, normalize_dn, parent_of, parse_rdn, rdn_of, split_dn
from hl7conf.core.errors import DirectoryProtocolError, NameAlreadyBoundError, NameNotFoundError
from hl7conf.directory.base import Attributes, ModificationItem, ModOp, Scope, SearchCursor, SearchResult
from hl7conf.directory.filters import parse_filter

LOGGER = logging.getLogger(__name__)


@dataclass
class _Entry:
    dn: str
    attributes: Attributes


def _find_key(attributes: Attributes, name: str) -> str | None:
    wanted = name.lower()
    for key in attributes:
        if key.lower() == wanted:
            return key
    return None


def _copy(attributes: Attributes) -> Attributes:
    return {key: list(values) for key, values in attributes.items()}


class InMemoryDirectory:
    """Hierarchical attribute store with LDAP-like semantics.

    Entries may only be created beneath an existing entry or directly beneath
    one of the configured suffixes. DNs and attribute names compare
    case-insensitively.
    """

    def __init__(self, *, suffixes: Sequence[str] = ("dc=example,dc=com",)) -> None:
        self.suffixes = tuple(normalize_dn(s) for s in suffixes)
        self._entries: dict[str, _Entry] = {}

    def _get(self, dn: str) -> _Entry:
        entry = self._entries.get(normalize_dn(dn))
        if entry is None:
            raise NameNotFoundError(f"No such entry: {dn}")
        return entry

    def _base_exists(self, dn: str) -> bool:
        key = normalize_dn(dn)
        return key in self._entries or key in self.suffixes

    def exists(self, dn: str) -> bool:
        return normalize_dn(dn) in self._entries

    def lookup(self, dn: str) -> Attributes:
        return _copy(self._get(dn).attributes)

    def create_entry(self, dn: str, attributes: Attributes) -> None:
        key = normalize_dn(dn)
        if key in self._entries:
            raise NameAlreadyBoundError(f"Entry already exists: {dn}")
        parent = parent_of(dn)
        if key not in self.suffixes and not self._base_exists(parent):
            raise NameNotFoundError(f"Parent entry does not exist: {parent}")

        stored = _copy(attributes)
        for attr, value in parse_rdn(rdn_of(dn)):
            existing = _find_key(stored, attr)
            if existing is None:
                stored[attr] = [value]
            elif value.lower() not in (v.lower() for v in stored[existing]):
                stored[existing].append(value)
        self._entries[key] = _Entry(dn=dn, attributes=stored)
        LOGGER.debug("Created entry %s", dn)

    def destroy_entry(self, dn: str) -> None:
        key = normalize_dn(dn)
        self._get(dn)
        if any(is_descendant(other, key) for other in self._entries):
            raise DirectoryProtocolError(f"Entry has children: {dn}")
        del self._entries[key]
        LOGGER.debug("Destroyed entry %s", dn)

    def destroy_subtree(self, dn: str) -> None:
        key = normalize_dn(dn)
        self._get(dn)
        doomed = [other for other in self._entries if other == key or is_descendant(other, key)]
        for other in doomed:
            del self._entries[other]
        LOGGER.debug("Destroyed subtree %s (%d entries)", dn, len(doomed))

    def search(
        self,
        base_dn: str,
        filter_expr: str,
        attributes: Sequence[str] | None = None,
        *,
        scope: Scope = Scope.ONELEVEL,
    ) -> SearchCursor:
        if not self._base_exists(base_dn):
            raise NameNotFoundError(f"Search base does not exist: {base_dn}")
        predicate = parse_filter(filter_expr)
        base_key = normalize_dn(base_dn)
        base_depth = len(split_dn(base_key))

        matches: list[SearchResult] = []
        for key, entry in self._entries.items():
            if scope is Scope.BASE:
                in_scope = key == base_key
            elif scope is Scope.ONELEVEL:
                in_scope = parent_of(key) == base_key
            else:
                in_scope = key == base_key or is_descendant(key, base_key)
            if not in_scope or not predicate(entry.attributes):
                continue
            rdns = split_dn(entry.dn)
            name = ",".join(rdns[: len(rdns) - base_depth])
            matches.append(
                SearchResult(name=name, dn=entry.dn, attributes=_select(entry.attributes, attributes))
            )
        return SearchCursor(iter(matches))

    def modify_attributes(self, dn: str, mods: Sequence[ModificationItem]) -> None:
        entry = self._get(dn)
        updated = _copy(entry.attributes)
        for mod in mods:
            key = _find_key(updated, mod.attribute)
            if mod.op is ModOp.REPLACE:
                if key is not None:
                    del updated[key]
                if mod.values:
                    updated[mod.attribute] = list(mod.values)
            elif mod.op is ModOp.ADD:
                if key is None:
                    updated[mod.attribute] = list(mod.values)
                else:
                    updated[key].extend(v for v in mod.values if v not in updated[key])
            elif mod.op is ModOp.REMOVE:
                if key is None:
                    raise DirectoryProtocolError(f"No such attribute {mod.attribute} on {dn}")
                if mod.values:
                    updated[key] = [v for v in updated[key] if v not in mod.values]
                    if not updated[key]:
                        del updated[key]
                else:
                    del updated[key]
        entry.attributes = updated
        LOGGER.debug("Modified %s with %d item(s)", dn, len(mods))

    def list_child_names(self, base_dn: str, filter_expr: str, attribute: str) -> list[str]:
        names: list[str] = []
        with self.search(base_dn, filter_expr, [attribute]) as cursor:
            for result in cursor:
                names.extend(next(iter(result.attributes.values()), []))
        return names

    def dump(self) -> dict[str, Attributes]:
        return {entry.dn: _copy(entry.attributes) for entry in self._entries.values()}

    def restore(self, entries: dict[str, Attributes]) -> None:
        self._entries = {
            normalize_dn(dn): _Entry(dn=dn, attributes=_copy(attributes)) for dn, attributes in entries.items()
        }


def _select(attributes: Attributes, wanted: Sequence[str] | None) -> Attributes:
    if wanted is None:
        return _copy(attributes)
    selected: Attributes = {}
    for name in wanted:
        key = _find_key(attributes, name)
        if key is not None:
            selected[key] = list(attributes[key])
    return selected
