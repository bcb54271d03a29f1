"""Directory adapter interfaces."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

Attributes = dict[str, list[str]]


class ModOp(str, Enum):
    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"


class Scope(str, Enum):
    BASE = "base"
    ONELEVEL = "onelevel"
    SUBTREE = "subtree"


@dataclass(frozen=True)
class ModificationItem:
    op: ModOp
    attribute: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchResult:
    name: str
    dn: str
    attributes: Attributes


class SearchCursor:
    """Lazily produced search results; callers must close it on every exit path."""

    def __init__(self, results: Iterator[SearchResult]) -> None:
        self._results = results
        self.closed = False

    def __iter__(self) -> Iterator[SearchResult]:
        return self

    def __next__(self) -> SearchResult:
        if self.closed:
            raise StopIteration
        return next(self._results)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> SearchCursor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class DirectoryAdapter(Protocol):
    def exists(self, dn: str) -> bool:
        """Return True if an entry exists at ``dn``."""

    def create_entry(self, dn: str, attributes: Attributes) -> None:
        """Create an entry; raise NameAlreadyBoundError if ``dn`` exists."""

    def destroy_entry(self, dn: str) -> None:
        """Remove a leaf entry; raise NameNotFoundError if absent."""

    def destroy_subtree(self, dn: str) -> None:
        """Remove an entry and everything beneath it; raise NameNotFoundError if absent."""

    def search(
        self,
        base_dn: str,
        filter_expr: str,
        attributes: Sequence[str] | None = None,
        *,
        scope: Scope = Scope.ONELEVEL,
    ) -> SearchCursor:
        """Search below ``base_dn`` and return a cursor over matching entries."""

    def modify_attributes(self, dn: str, mods: Sequence[ModificationItem]) -> None:
        """Apply a batch of attribute modifications to one entry."""

    def list_child_names(self, base_dn: str, filter_expr: str, attribute: str) -> list[str]:
        """Return ``attribute`` values of the immediate children matching ``filter_expr``."""
