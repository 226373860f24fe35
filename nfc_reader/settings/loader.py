"""YAML settings loader.

Schema (every key optional):
  database: path to the SQLite history file
  storage_key: string
  history_limit: 1..20
  radio: replay | none
  tag_dir: path to the replay radio's tag dumps
  replay_delay: seconds (>= 0)
  polling_modes: [iso14443 | iso15693]
  log_level: DEBUG | INFO | WARNING | ERROR | CRITICAL
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from nfc_reader.domain.errors import ConfigError
from nfc_reader.domain.models import HISTORY_CAPACITY, PollingMode
from nfc_reader.settings.defaults import APP_DIR, DEFAULT_SETTINGS, RADIO_KINDS, Settings

SETTINGS_PATH = APP_DIR / "config.yml"
SETTINGS_ENV_VAR = "NFC_READER_CONFIG"

_KNOWN_KEYS = frozenset(
    {
        "database",
        "storage_key",
        "history_limit",
        "radio",
        "tag_dir",
        "replay_delay",
        "polling_modes",
        "log_level",
    }
)


def default_settings_path() -> Path:
    """Settings file location, honouring NFC_READER_CONFIG."""
    override = os.getenv(SETTINGS_ENV_VAR)
    return Path(override).expanduser() if override else SETTINGS_PATH


def load_settings(path: Path | None = None) -> Settings:
    """Load Settings from a YAML file.

    A missing file yields the defaults.

    Raises:
        ConfigError: if the YAML is unreadable or structurally invalid.
    """
    path = path or default_settings_path()
    if not path.exists():
        return DEFAULT_SETTINGS

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid YAML in settings file {path}: {err}") from err
    except OSError as err:
        raise ConfigError(f"Cannot read settings file {path}: {err}") from err

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return parse_settings(data, source=str(path))


def parse_settings(data: dict[str, Any], source: str = "") -> Settings:
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown setting(s) {', '.join(unknown)} (source: {source})")

    defaults = DEFAULT_SETTINGS
    return Settings(
        database=_parse_path(data, "database", defaults.database),
        storage_key=_parse_str(data, "storage_key", defaults.storage_key),
        history_limit=_parse_limit(data.get("history_limit", defaults.history_limit)),
        radio=_parse_radio(data.get("radio", defaults.radio)),
        tag_dir=_parse_path(data, "tag_dir", defaults.tag_dir),
        replay_delay=_parse_delay(data.get("replay_delay", defaults.replay_delay)),
        polling_modes=_parse_polling_modes(data.get("polling_modes"), defaults.polling_modes),
        log_level=_parse_log_level(data.get("log_level"), defaults.log_level),
    )


def _parse_str(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"Setting '{key}' must be a non-empty string")
    return value


def _parse_path(data: dict[str, Any], key: str, default: Path) -> Path:
    if key not in data:
        return default
    return Path(_parse_str(data, key, "")).expanduser()


def _parse_limit(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Setting 'history_limit' must be an integer, got {value!r}")
    if not 1 <= value <= HISTORY_CAPACITY:
        raise ConfigError(f"Setting 'history_limit' must be between 1 and {HISTORY_CAPACITY}")
    return value


def _parse_radio(value: Any) -> str:
    if value not in RADIO_KINDS:
        raise ConfigError(f"Invalid radio '{value}', expected one of: {', '.join(RADIO_KINDS)}")
    return value


def _parse_delay(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"Setting 'replay_delay' must be a non-negative number, got {value!r}")
    return float(value)


def _parse_polling_modes(raw: Any, default: frozenset[PollingMode]) -> frozenset[PollingMode]:
    if raw is None:
        return default
    if not isinstance(raw, list) or not raw:
        raise ConfigError("Setting 'polling_modes' must be a non-empty list")
    modes = set()
    for item in raw:
        try:
            modes.add(PollingMode(item))
        except ValueError as err:
            raise ConfigError(f"Invalid polling mode '{item}'") from err
    return frozenset(modes)


def _parse_log_level(raw: Any, default: int) -> int:
    if raw is None:
        return default
    if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 0:
        return raw
    level = logging.getLevelName(str(raw).upper())
    if not isinstance(level, int):
        raise ConfigError(f"Invalid log level '{raw}'")
    return level
