"""Wiring shared by CLI commands: settings, radio, storage and session."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import click

from nfc_reader.adapters.replay import ReplayRadio, UnsupportedRadio
from nfc_reader.domain.interfaces import TagRadio
from nfc_reader.engine.session import ScanSession
from nfc_reader.settings.defaults import Settings
from nfc_reader.settings.loader import load_settings
from nfc_reader.storage.log_store import LogStore
from nfc_reader.storage.sqlite_store import SQLiteStringListStore


CONFIG_PATH_KEY = "nfc_reader.config_path"


def current_settings(ctx: click.Context) -> Settings:
    """Settings loaded by the command group, or from the settings file."""
    settings = ctx.find_object(Settings)
    return settings if settings is not None else load_settings(ctx.meta.get(CONFIG_PATH_KEY))


def build_radio(settings: Settings, tag_dir: Path | None = None) -> TagRadio:
    if settings.radio == "none":
        return UnsupportedRadio()
    return ReplayRadio(tag_dir=tag_dir or settings.tag_dir, delay=settings.replay_delay)


def build_log_store(settings: Settings) -> LogStore:
    store = SQLiteStringListStore(db_path=settings.database)
    return LogStore(store, key=settings.storage_key, capacity=settings.history_limit)


def build_session(
    settings: Settings,
    tag_dir: Path | None = None,
    on_unavailable: Callable[[], None] | None = None,
) -> ScanSession:
    return ScanSession(
        radio=build_radio(settings, tag_dir=tag_dir),
        log_store=build_log_store(settings),
        polling_modes=settings.polling_modes,
        on_unavailable=on_unavailable,
    )
