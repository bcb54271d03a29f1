"""Directory adapter persisted to a YAML document."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import yaml

from hl7conf.core.errors import DirectoryProtocolError
from hl7conf.directory.base import Attributes, ModificationItem
from hl7conf.directory.memory import InMemoryDirectory


class YAMLFileDirectory(InMemoryDirectory):
    """In-memory directory written back to ``path`` after every mutation."""

    def __init__(self, path: Path, *, suffixes: Sequence[str] = ("dc=example,dc=com",)) -> None:
        super().__init__(suffixes=suffixes)
        self.path = path
        if path.exists():
            self.restore(self._read())

    def _read(self) -> dict[str, Attributes]:
        try:
            loaded = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise DirectoryProtocolError(f"Could not read directory file {self.path}: {exc}") from exc
        if loaded is None:
            return {}
        if not isinstance(loaded, dict) or not all(isinstance(v, dict) for v in loaded.values()):
            raise DirectoryProtocolError(f"Directory file {self.path} must map DNs to attribute mappings")
        return {
            str(dn): {str(attr): [str(v) for v in values] for attr, values in attributes.items()}
            for dn, attributes in loaded.items()
        }

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                yaml.safe_dump(self.dump(), sort_keys=False, allow_unicode=True),
                encoding="utf-8",
            )
        except OSError as exc:
            raise DirectoryProtocolError(f"Could not write directory file {self.path}: {exc}") from exc

    def create_entry(self, dn: str, attributes: Attributes) -> None:
        super().create_entry(dn, attributes)
        self._write()

    def destroy_entry(self, dn: str) -> None:
        super().destroy_entry(dn)
        self._write()

    def destroy_subtree(self, dn: str) -> None:
        super().destroy_subtree(dn)
        self._write()

    def modify_attributes(self, dn: str, mods: Sequence[ModificationItem]) -> None:
        super().modify_attributes(dn, mods)
        self._write()
