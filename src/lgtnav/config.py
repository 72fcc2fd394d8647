from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import Mapping, TypeAlias
import logging
import tomllib

from lgtnav.schema import EngineSettings, LoggingSettings, ServerSettings

DEFAULT_CONFIG_NAME = "lgtnav.toml"
CLIENT_SETTINGS_KEY = "lgtnav"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

logger = logging.getLogger(__name__)


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("Cannot read %s, using defaults", path)
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("Invalid TOML in %s, using defaults: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def engine_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "engine")


def logging_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "logging")


def code_lens_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "code_lens")


def _normalize_arg_list(value: TomlValue) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in value.split() if part]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item)]
    return []


def as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def merge_payload(payload: Mapping[str, object], defaults: Mapping[str, object]) -> dict[str, object]:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def client_section(settings: object, name: str) -> dict[str, object]:
    """Extract ``lgtnav.<name>`` from a didChangeConfiguration payload."""
    if not isinstance(settings, Mapping):
        return {}
    scoped = settings.get(CLIENT_SETTINGS_KEY, settings)
    if not isinstance(scoped, Mapping):
        return {}
    section = scoped.get(name, {})
    return dict(section) if isinstance(section, Mapping) else {}


def load_server_settings(
    root: Path | None = None,
    config_path: Path | None = None,
    client_settings: object = None,
) -> ServerSettings:
    data = load_config(root=root, config_path=config_path)
    engine = merge_payload(client_section(client_settings, "engine"), _section(data, "engine"))
    if "args" in engine:
        engine["args"] = _normalize_arg_list(engine["args"])
    logging_section = merge_payload(
        client_section(client_settings, "logging"), _section(data, "logging")
    )
    code_lens = merge_payload(
        client_section(client_settings, "code_lens"), _section(data, "code_lens")
    )
    return ServerSettings(
        engine=EngineSettings.model_validate(engine),
        logging=LoggingSettings.model_validate(logging_section),
        code_lens_enabled=as_bool(code_lens.get("enabled", True)),
    )
