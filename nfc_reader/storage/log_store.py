"""Bounded scan history persisted through a StringListStore.

Stored format: a string list under one key, newest first. Each element is
a JSON object with exactly these fields:
  timestamp  — ISO-8601 string
  summary    — display text
  rawPayload — JSON-encoded raw tag data (a string, not an object)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from nfc_reader.domain.errors import ParseError, PersistenceReadError
from nfc_reader.domain.interfaces import StringListStore
from nfc_reader.domain.models import HISTORY_CAPACITY, STORAGE_KEY, LogEntry, LogHistory

logger = logging.getLogger(__name__)

_FIELDS = ("timestamp", "summary", "rawPayload")


def serialize_entry(entry: LogEntry) -> str:
    """Encode one entry in the persisted record format."""
    return json.dumps(
        {
            "timestamp": entry.timestamp.isoformat(),
            "summary": entry.summary,
            "rawPayload": entry.raw_payload,
        },
        ensure_ascii=False,
    )


def parse_entry(text: str) -> LogEntry:
    """Decode one persisted record.

    Raises:
        ParseError: if the record is not a JSON object with the expected
            string fields, or its timestamp is not ISO-8601.
    """
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as err:
        raise ParseError(f"Stored record is not valid JSON: {err}") from err

    if not isinstance(data, dict):
        raise ParseError(f"Stored record is not a JSON object: {text[:40]!r}")
    for field in _FIELDS:
        if not isinstance(data.get(field), str):
            raise ParseError(f"Stored record field '{field}' is missing or not a string")

    try:
        timestamp = datetime.fromisoformat(data["timestamp"])
    except ValueError as err:
        raise ParseError(f"Invalid timestamp '{data['timestamp']}'") from err

    return LogEntry(timestamp=timestamp, summary=data["summary"], raw_payload=data["rawPayload"])


class LogStore:
    """Owns the in-memory history and keeps it in step with storage.

    The history has a single writer (the scan session). Readers only ever
    see a complete tuple: a new history is published after its write has
    been awaited.
    """

    def __init__(
        self,
        store: StringListStore,
        key: str = STORAGE_KEY,
        capacity: int = HISTORY_CAPACITY,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._store = store
        self._key = key
        self._capacity = capacity
        self._history: LogHistory = ()

    @property
    def history(self) -> LogHistory:
        return self._history

    @property
    def capacity(self) -> int:
        return self._capacity

    async def load(self) -> LogHistory:
        """Replace the in-memory history with the stored one.

        Unreadable storage yields an empty history and unparseable records
        are dropped; neither aborts the load.
        """
        try:
            stored = await self._store.get_string_list(self._key) or []
        except PersistenceReadError as err:
            logger.warning("Could not read scan history, starting empty: %s", err)
            stored = []

        entries: list[LogEntry] = []
        for index, text in enumerate(stored):
            try:
                entries.append(parse_entry(text))
            except ParseError as err:
                logger.warning("Dropping stored scan #%d: %s", index, err)

        self._history = tuple(entries[: self._capacity])
        logger.debug("Loaded %d scan(s) from '%s'", len(self._history), self._key)
        return self._history

    async def append(self, entry: LogEntry) -> LogHistory:
        """Prepend entry, trim to capacity, persist, then publish.

        Raises:
            PersistenceWriteError: if the write fails. The in-memory
                history is left unchanged in that case.
        """
        updated = (entry, *self._history)[: self._capacity]
        await self._store.set_string_list(self._key, [serialize_entry(e) for e in updated])
        self._history = updated
        return updated
