"""Settings from defaults, the user config file and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from hl7conf.core.dn import is_descendant, normalize_dn
from hl7conf.core.errors import DirectoryProtocolError, SettingsError
from hl7conf.core.yaml_io import read_yaml, validate

DEFAULT_BASE_DN = "dc=example,dc=com"


@dataclass(frozen=True)
class Settings:
    configuration_root: str
    base_dn: str
    store_path: Path


def _config_file() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "hl7conf/config.yaml"


def _default_store_path() -> Path:
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "hl7conf/directory.yaml"


def load_settings() -> Settings:
    values: dict[str, str] = {}
    path = _config_file()
    if path.exists():
        doc = read_yaml(path, read_error=SettingsError, invalid_error=SettingsError)
        validate(doc, "settings.schema.json", path, error=SettingsError)
        values.update(doc)

    for key, env in (
        ("configuration_root", "HL7CONF_CONFIGURATION_ROOT"),
        ("base_dn", "HL7CONF_BASE_DN"),
        ("store", "HL7CONF_STORE"),
    ):
        if os.environ.get(env):
            values[key] = os.environ[env]

    base_dn = values.get("base_dn", DEFAULT_BASE_DN)
    configuration_root = values.get("configuration_root", f"cn=DICOM Configuration,{base_dn}")
    try:
        inside = is_descendant(configuration_root, base_dn)
    except DirectoryProtocolError as exc:
        raise SettingsError(f"Invalid DN in settings: {exc}") from exc
    if not inside:
        raise SettingsError(
            f"Configuration root '{configuration_root}' must lie beneath base DN '{base_dn}'"
        )

    store = values.get("store")
    return Settings(
        configuration_root=configuration_root,
        base_dn=normalize_dn(base_dn),
        store_path=Path(store).expanduser() if store else _default_store_path(),
    )
