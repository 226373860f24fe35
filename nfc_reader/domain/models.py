"""Core domain models for the NFC reader.

These models have ZERO dependencies on storage, CLI, or any radio driver.
Vocabulary: tag, scan session, log entry, history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

TagData = dict[str, Any]
"""Raw tag data as reported by the radio: an arbitrary nested mapping."""

HISTORY_CAPACITY = 20
"""Maximum number of scans kept in the history."""

STORAGE_KEY = "nfc_logs"
"""Key under which the history is persisted."""


class SessionState(Enum):
    """Where the scan session is in its lifecycle."""

    UNKNOWN = "unknown"
    UNAVAILABLE = "unavailable"
    IDLE = "idle"
    SCANNING = "scanning"


class PollingMode(Enum):
    """Radio protocol families the reader listens for."""

    ISO14443 = "iso14443"
    ISO15693 = "iso15693"


DEFAULT_POLLING_MODES: frozenset[PollingMode] = frozenset(
    {PollingMode.ISO14443, PollingMode.ISO15693}
)


class ScanOutcome(Enum):
    """How a single scan attempt ended.

    An attempt starts PENDING and resolves exactly once.
    """

    PENDING = "pending"
    DISCOVERED = "discovered"
    FAILED = "failed"


@dataclass(frozen=True)
class LogEntry:
    """One captured tag."""

    timestamp: datetime
    summary: str
    """Human-facing text derived from the tag payload."""

    raw_payload: str
    """JSON serialization of the raw tag data, kept for inspection."""


LogHistory = tuple[LogEntry, ...]
"""Scan history, newest first, at most HISTORY_CAPACITY entries."""


@dataclass(frozen=True)
class SessionSnapshot:
    """What the UI renders: session state, status line and history."""

    state: SessionState
    status: str
    history: LogHistory = ()

    @property
    def scanning(self) -> bool:
        return self.state is SessionState.SCANNING
