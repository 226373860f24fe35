"""Replay radio — serves recorded tag dumps as if they were tapped.

Reads tag dumps from a directory and hands them to the scan session one
per radio session, the way a real driver reports a tag. This is a
read-only adapter: it never modifies the dump files.

Dump format (same shape the platform driver reports):
- .json, .yml or .yaml file holding one mapping
- top-level keys are technology names ("nfca", "ndef", "mifareultralight", ...)
- ndef.cachedMessage.records[].payload is a list of byte values
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Set
from pathlib import Path
from typing import Any

import yaml

from nfc_reader.domain.errors import PlatformSessionError, PlatformUnavailable
from nfc_reader.domain.interfaces import DiscoveryCallback
from nfc_reader.domain.models import PollingMode, TagData

logger = logging.getLogger(__name__)

_DUMP_SUFFIXES = frozenset({".json", ".yml", ".yaml"})

DEFAULT_TAG_DIR = Path.home() / ".nfc_reader" / "tags"


def discover_tag_dumps(tag_dir: Path) -> list[Path]:
    """Find tag dump files in a directory, sorted by name.

    Returns an empty list if the directory doesn't exist.
    """
    if not tag_dir.is_dir():
        return []
    return sorted(p for p in tag_dir.iterdir() if p.is_file() and p.suffix in _DUMP_SUFFIXES)


def load_tag_dump(path: Path) -> TagData:
    """Load one tag dump.

    Raises:
        PlatformSessionError: if the file is not a mapping in JSON or YAML.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data: Any = json.load(f) if path.suffix == ".json" else yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as err:
        raise PlatformSessionError(f"Unreadable tag dump {path.name}: {err}") from err

    if not isinstance(data, dict):
        raise PlatformSessionError(f"Tag dump {path.name} is not a mapping")
    return data


class ReplayRadio:
    """TagRadio implementation backed by a directory of tag dumps.

    Available when the directory holds at least one dump. Each session
    delivers the next dump after ``delay`` seconds, then stops by itself.
    """

    def __init__(self, tag_dir: Path | None = None, delay: float = 0.5) -> None:
        self._tag_dir = tag_dir or DEFAULT_TAG_DIR
        self._delay = delay
        self._cursor = 0
        self._closed: asyncio.Event | None = None
        self._pending: asyncio.TimerHandle | None = None

    async def is_available(self) -> bool:
        return bool(discover_tag_dumps(self._tag_dir))

    async def start_session(
        self,
        polling_modes: Set[PollingMode],
        on_discovered: DiscoveryCallback,
    ) -> None:
        if self._closed is not None:
            raise PlatformSessionError("A tag session is already active.")
        if not polling_modes:
            raise PlatformSessionError("No polling modes requested.")

        dumps = discover_tag_dumps(self._tag_dir)
        if not dumps:
            raise PlatformUnavailable(f"No tag dumps found in {self._tag_dir}.")
        path = dumps[self._cursor % len(dumps)]
        self._cursor += 1
        tag = load_tag_dump(path)
        logger.debug("Replaying %s in %.2fs", path.name, self._delay)

        closed = asyncio.Event()
        self._closed = closed
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self._delay, self._deliver, on_discovered, tag, closed)
        try:
            await closed.wait()
        finally:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            self._closed = None

    def _deliver(self, on_discovered: DiscoveryCallback, tag: TagData, closed: asyncio.Event) -> None:
        self._pending = None
        try:
            on_discovered(tag)
        finally:
            # Like the platform driver, stop after the first tag.
            closed.set()

    async def stop_session(self) -> None:
        if self._closed is None:
            raise PlatformSessionError("Session already closed.")
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._closed.set()


class UnsupportedRadio:
    """TagRadio for devices without tag hardware."""

    def __init__(self, message: str = "This device does not support NFC.") -> None:
        self._message = message

    async def is_available(self) -> bool:
        return False

    async def start_session(
        self,
        polling_modes: Set[PollingMode],
        on_discovered: DiscoveryCallback,
    ) -> None:
        raise PlatformUnavailable(self._message)

    async def stop_session(self) -> None:
        raise PlatformSessionError("No session to stop.")
