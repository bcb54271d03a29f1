"""Pluggable attribute groups attached to HL7 application entries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from hl7conf.core.application import HL7Application
from hl7conf.core.attributes import (
    has_attribute,
    store_diff,
    store_diff_object,
    store_not_default,
    store_not_empty,
    string_array,
    string_value,
)
from hl7conf.directory.base import Attributes, ModificationItem

if TYPE_CHECKING:
    from hl7conf.core.engine import HL7Configuration

FacetValues = dict[str, Any]


class HL7ConfigurationExtension:
    """Base class for facet handlers chained by :class:`HL7Configuration`.

    Every hook is a no-op by default; handlers override the ones they need.
    ``store_to``/``load_from``/``store_diffs`` operate on the attributes of the
    application entry itself, the ``*_childs`` hooks on entries nested beneath it.
    """

    id = "extension"

    def __init__(self) -> None:
        self.configuration: HL7Configuration | None = None

    def bind(self, configuration: HL7Configuration | None) -> None:
        if configuration is not None and self.configuration not in (None, configuration):
            raise ValueError(f"Extension '{self.id}' is already bound to another configuration")
        self.configuration = configuration

    def _config(self) -> HL7Configuration:
        if self.configuration is None:
            raise RuntimeError(f"Extension '{self.id}' is not bound to a configuration")
        return self.configuration

    def store_to(self, app: HL7Application, device_dn: str, attrs: Attributes) -> None:
        pass

    def store_childs(self, app_dn: str, app: HL7Application) -> None:
        pass

    def load_from(self, app: HL7Application, attrs: Attributes) -> None:
        pass

    def load_childs(self, app: HL7Application, app_dn: str) -> None:
        pass

    def store_diffs(self, prev: HL7Application, app: HL7Application, mods: list[ModificationItem]) -> None:
        pass

    def merge_childs(self, prev: HL7Application, app: HL7Application, app_dn: str) -> None:
        pass


@dataclass(frozen=True)
class FacetAttribute:
    name: str
    multi: bool = False
    default: str | None = None


@dataclass(frozen=True)
class FacetDefinition:
    id: str
    name: str
    placement: str
    attributes: tuple[FacetAttribute, ...]
    rdn: str | None = None
    object_class: str | None = None


class AttributeFacet(HL7ConfigurationExtension):
    """Facet handler driven by a declarative :class:`FacetDefinition`.

    Values live on the application as ``app.facets[definition.id]``. Inline
    facets contribute attributes to the application entry; child facets keep
    them in one entry named ``definition.rdn`` beneath it.
    """

    def __init__(self, definition: FacetDefinition) -> None:
        super().__init__()
        self.definition = definition
        self.id = definition.id

    @property
    def inline(self) -> bool:
        return self.definition.placement == "inline"

    def _values(self, app: HL7Application) -> FacetValues | None:
        values = app.facets.get(self.id)
        if not values:
            return None
        attrs: Attributes = {}
        self._store_attributes(values, attrs)
        return values if attrs else None

    def _store_attributes(self, values: FacetValues, attrs: Attributes) -> None:
        for attr in self.definition.attributes:
            value = values.get(attr.name)
            if attr.multi:
                store_not_empty(attrs, attr.name, tuple(value or ()))
            else:
                store_not_default(attrs, attr.name, value, attr.default)

    def _read_attributes(self, attrs: Attributes) -> FacetValues | None:
        if not any(has_attribute(attrs, attr.name) for attr in self.definition.attributes):
            return None
        values: FacetValues = {}
        for attr in self.definition.attributes:
            if attr.multi:
                values[attr.name] = string_array(attrs, attr.name)
            else:
                values[attr.name] = string_value(attrs, attr.name, attr.default)
        return values

    def _diff(self, prev: FacetValues | None, values: FacetValues | None, mods: list[ModificationItem]) -> None:
        prev = prev or {}
        values = values or {}
        for attr in self.definition.attributes:
            if attr.multi:
                store_diff(mods, attr.name, tuple(prev.get(attr.name) or ()), tuple(values.get(attr.name) or ()))
            else:
                store_diff_object(mods, attr.name, prev.get(attr.name), values.get(attr.name), attr.default)

    def _child_dn(self, app_dn: str) -> str:
        return f"{self.definition.rdn},{app_dn}"

    def store_to(self, app: HL7Application, device_dn: str, attrs: Attributes) -> None:
        values = self._values(app)
        if self.inline and values is not None:
            self._store_attributes(values, attrs)

    def load_from(self, app: HL7Application, attrs: Attributes) -> None:
        if not self.inline:
            return
        values = self._read_attributes(attrs)
        if values is not None:
            app.facets[self.id] = values

    def store_diffs(self, prev: HL7Application, app: HL7Application, mods: list[ModificationItem]) -> None:
        if self.inline:
            self._diff(self._values(prev), self._values(app), mods)

    def store_childs(self, app_dn: str, app: HL7Application) -> None:
        values = self._values(app)
        if self.inline or values is None:
            return
        attrs: Attributes = {"objectclass": [str(self.definition.object_class)]}
        self._store_attributes(values, attrs)
        self._config().create_entry(self._child_dn(app_dn), attrs)

    def load_childs(self, app: HL7Application, app_dn: str) -> None:
        if self.inline:
            return
        for attrs in self._config().search_attributes(app_dn, f"(objectclass={self.definition.object_class})"):
            values = self._read_attributes(attrs)
            if values is not None:
                app.facets[self.id] = values
            return

    def merge_childs(self, prev: HL7Application, app: HL7Application, app_dn: str) -> None:
        if self.inline:
            return
        prev_values, values = self._values(prev), self._values(app)
        if prev_values is None:
            self.store_childs(app_dn, app)
        elif values is None:
            self._config().destroy_subtree(self._child_dn(app_dn))
        else:
            mods: list[ModificationItem] = []
            self._diff(prev_values, values, mods)
            self._config().modify_attributes(self._child_dn(app_dn), mods)
