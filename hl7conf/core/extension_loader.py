"""Loading and validation of YAML-based extension facet definitions."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

from hl7conf.core.dn import parse_rdn, split_dn
from hl7conf.core.errors import DirectoryProtocolError, ExtensionLoadError, ExtensionValidationError
from hl7conf.core.extensions import FacetAttribute, FacetDefinition
from hl7conf.core.yaml_io import normalize_bool, read_yaml, validate

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedExtensions:
    definitions: dict[str, FacetDefinition]
    warnings: tuple[str, ...]


def _extension_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "hl7conf/extensions", xdg_data / "hl7conf/extensions"


def _normalize_rdn(value: str, *, context: str) -> str:
    try:
        rdns = split_dn(value)
        if len(rdns) != 1:
            raise ExtensionValidationError(f"{context} must be a single RDN")
        parse_rdn(rdns[0])
    except DirectoryProtocolError as exc:
        raise ExtensionValidationError(f"{context} is not a valid RDN: {exc}") from exc
    return rdns[0]


def _build_definition(doc: dict[str, Any], source: Path | Traversable) -> FacetDefinition:
    validate(doc, "extension.schema.json", source, error=ExtensionValidationError)

    attributes: list[FacetAttribute] = []
    seen: set[str] = set()
    for spec in doc["attributes"]:
        context = f"{doc['id']}.{spec['name']}"
        if spec["name"].lower() in seen:
            raise ExtensionValidationError(f"{context} is declared twice")
        seen.add(spec["name"].lower())
        multi = normalize_bool(spec.get("multi", False), context=f"{context}.multi", error=ExtensionValidationError)
        if multi and "default" in spec:
            raise ExtensionValidationError(f"{context} is multi-valued and cannot declare a default")
        attributes.append(FacetAttribute(name=spec["name"], multi=multi, default=spec.get("default")))

    rdn = None
    if doc["placement"] == "child":
        rdn = _normalize_rdn(doc["rdn"], context=f"{doc['id']}.rdn")

    return FacetDefinition(
        id=doc["id"],
        name=doc["name"],
        placement=doc["placement"],
        attributes=tuple(attributes),
        rdn=rdn,
        object_class=doc.get("object_class"),
    )


def _read(path: Path | Traversable) -> dict[str, Any]:
    return read_yaml(path, read_error=ExtensionLoadError, invalid_error=ExtensionValidationError)


def _iter_packaged_extension_paths() -> list[Traversable]:
    root = resources.files("hl7conf.extensions")
    return [item for item in root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_extension_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _extension_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_extensions() -> LoadedExtensions:
    definitions: dict[str, FacetDefinition] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_extension_paths(), key=lambda p: p.name):
        definition = _build_definition(_read(path), path)
        definitions[definition.id] = definition

    for path in _iter_user_extension_paths():
        definition = _build_definition(_read(path), path)
        if definition.id in definitions:
            warning = f"User extension '{definition.id}' overrides packaged extension"
            LOGGER.warning(warning)
            warnings.append(warning)
        definitions[definition.id] = definition

    return LoadedExtensions(definitions=definitions, warnings=tuple(warnings))
