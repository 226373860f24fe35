"""Built-in settings used when no settings file exists."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from nfc_reader.domain.models import (
    DEFAULT_POLLING_MODES,
    HISTORY_CAPACITY,
    STORAGE_KEY,
    PollingMode,
)

APP_DIR = Path.home() / ".nfc_reader"

RADIO_KINDS = ("replay", "none")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the reader."""

    database: Path = APP_DIR / "nfc_reader.db"
    """SQLite file holding the scan history."""

    storage_key: str = STORAGE_KEY
    history_limit: int = HISTORY_CAPACITY
    """How many scans to keep; never more than HISTORY_CAPACITY."""

    radio: str = "replay"
    """Radio backend: 'replay' (tag dump directory) or 'none' (no hardware)."""

    tag_dir: Path = APP_DIR / "tags"
    replay_delay: float = 0.5
    """Seconds before the replay radio reports a tag."""

    polling_modes: frozenset[PollingMode] = field(default=DEFAULT_POLLING_MODES)
    log_level: int = logging.WARNING


DEFAULT_SETTINGS = Settings()
