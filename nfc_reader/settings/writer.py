"""Settings writer — persist Settings to ~/.nfc_reader/config.yml."""

from __future__ import annotations

import logging
import os
from contextlib import suppress
from pathlib import Path
from typing import Any

import yaml

from nfc_reader.settings.defaults import Settings
from nfc_reader.settings.loader import default_settings_path


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Write settings as YAML. Creates the parent directory if needed."""
    path = path or default_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            settings_to_dict(settings),
            f,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
    with suppress(OSError):
        os.chmod(path, 0o600)
    return path


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    return {
        "database": str(settings.database),
        "storage_key": settings.storage_key,
        "history_limit": settings.history_limit,
        "radio": settings.radio,
        "tag_dir": str(settings.tag_dir),
        "replay_delay": settings.replay_delay,
        "polling_modes": sorted(mode.value for mode in settings.polling_modes),
        "log_level": _level_name(settings.log_level),
    }


def _level_name(level: int) -> str | int:
    name = logging.getLevelName(level)
    return name if isinstance(name, str) and not name.startswith("Level ") else level
