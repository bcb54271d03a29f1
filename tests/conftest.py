from __future__ import annotations

from collections.abc import Sequence

import pytest

from hl7conf.core.application import HL7Application, HL7DeviceExtension
from hl7conf.core.engine import HL7Configuration
from hl7conf.core.extensions import AttributeFacet, FacetAttribute, FacetDefinition
from hl7conf.core.model import Connection, Device
from hl7conf.core.store import ConfigurationRoot
from hl7conf.directory.base import Attributes, ModificationItem
from hl7conf.directory.memory import InMemoryDirectory

ROOT_DN = "cn=DICOM Configuration,dc=example,dc=com"

ARCHIVE = FacetDefinition(
    id="archive",
    name="Archive",
    placement="inline",
    attributes=(
        FacetAttribute(name="hl7PatientUpdateTemplateURI"),
        FacetAttribute(name="dcmAETitle"),
    ),
)

FORWARD = FacetDefinition(
    id="forward",
    name="Forward",
    placement="child",
    rdn="cn=HL7 Forward",
    object_class="hl7ForwardRule",
    attributes=(
        FacetAttribute(name="hl7FwdApplicationName", multi=True),
        FacetAttribute(name="hl7ForwardOnly", default="FALSE"),
    ),
)


class RecordingDirectory(InMemoryDirectory):
    """In-memory directory that records every call made to it."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []

    @property
    def mutations(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in {"create", "destroy", "destroy_subtree", "modify"}]

    def exists(self, dn: str) -> bool:
        self.calls.append(("exists", dn))
        return super().exists(dn)

    def create_entry(self, dn: str, attributes: Attributes) -> None:
        self.calls.append(("create", dn))
        super().create_entry(dn, attributes)

    def destroy_entry(self, dn: str) -> None:
        self.calls.append(("destroy", dn))
        super().destroy_entry(dn)

    def destroy_subtree(self, dn: str) -> None:
        self.calls.append(("destroy_subtree", dn))
        super().destroy_subtree(dn)

    def modify_attributes(self, dn: str, mods: Sequence[ModificationItem]) -> None:
        self.calls.append(("modify", dn))
        super().modify_attributes(dn, mods)


def make_device(*apps: HL7Application, name: str = "hl7rcv", installed: bool = True) -> Device:
    device = Device(
        name=name,
        installed=installed,
        connections=[
            Connection(common_name="hl7", hostname="localhost", port=2575),
            Connection(hostname="hl7.example.com", port=12575),
        ],
    )
    ext = HL7DeviceExtension()
    device.add_hl7_extension(ext)
    for app in apps:
        ext.add_application(app)
    return device


@pytest.fixture
def directory() -> RecordingDirectory:
    return RecordingDirectory()


@pytest.fixture
def root(directory: RecordingDirectory) -> ConfigurationRoot:
    return ConfigurationRoot(directory, ROOT_DN)


@pytest.fixture
def config(directory: RecordingDirectory, root: ConfigurationRoot) -> HL7Configuration:
    return HL7Configuration(directory, root, extensions=[AttributeFacet(ARCHIVE), AttributeFacet(FORWARD)])


@pytest.fixture
def device_dn(directory: RecordingDirectory, root: ConfigurationRoot) -> str:
    root.ensure_exists()
    dn = root.device_dn("hl7rcv")
    directory.create_entry(dn, {"objectclass": ["dicomDevice"]})
    directory.calls.clear()
    return dn
