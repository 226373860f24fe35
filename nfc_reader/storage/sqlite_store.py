"""SQLite-backed string-list store.

Schema:
  list_keys    — one row per key ever written (key PK)
  list_values  — one row per list element (key, position) PK → list_keys

A key with a row in list_keys but no values is an empty list; a key with
no row at all was never written.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from collections.abc import Sequence
from contextlib import closing, suppress
from pathlib import Path

from nfc_reader.domain.errors import PersistenceReadError, PersistenceWriteError

logger = logging.getLogger(__name__)

DEFAULT_DB = Path.home() / ".nfc_reader" / "nfc_reader.db"

_DDL = """
CREATE TABLE IF NOT EXISTS list_keys (
    key         TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS list_values (
    key         TEXT    NOT NULL,
    position    INTEGER NOT NULL,
    value       TEXT    NOT NULL,
    PRIMARY KEY (key, position),
    FOREIGN KEY (key) REFERENCES list_keys(key)
);
"""


class SQLiteStringListStore:
    """SQLite implementation of the StringListStore protocol.

    Blocking sqlite3 calls run in a worker thread so the event loop stays
    responsive.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or DEFAULT_DB
        self._db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        self._schema_ready = False
        try:
            self._init_db()
        except sqlite3.Error as err:
            # Retried on first use, where the failure becomes a persistence error.
            logger.warning("Could not initialise %s: %s", self._db_path, err)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.executescript(_DDL)
        with suppress(OSError):
            os.chmod(self._db_path, 0o600)
        self._schema_ready = True

    def _read(self, key: str) -> list[str] | None:
        if not self._schema_ready:
            self._init_db()
        with closing(self._connect()) as conn:
            known = conn.execute("SELECT 1 FROM list_keys WHERE key = ?", (key,)).fetchone()
            if known is None:
                return None
            rows = conn.execute(
                "SELECT value FROM list_values WHERE key = ? ORDER BY position ASC", (key,)
            ).fetchall()
            return [row[0] for row in rows]

    def _write(self, key: str, values: Sequence[str]) -> None:
        if not self._schema_ready:
            self._init_db()
        # One transaction: readers see either the old list or the new one.
        with closing(self._connect()) as conn, conn:
            conn.execute("INSERT OR IGNORE INTO list_keys (key) VALUES (?)", (key,))
            conn.execute("DELETE FROM list_values WHERE key = ?", (key,))
            conn.executemany(
                "INSERT INTO list_values (key, position, value) VALUES (?, ?, ?)",
                [(key, position, value) for position, value in enumerate(values)],
            )

    async def get_string_list(self, key: str) -> list[str] | None:
        try:
            return await asyncio.to_thread(self._read, key)
        except sqlite3.Error as err:
            raise PersistenceReadError(f"Failed to read '{key}' from {self._db_path}: {err}") from err

    async def set_string_list(self, key: str, values: Sequence[str]) -> None:
        values = list(values)
        try:
            await asyncio.to_thread(self._write, key, values)
        except sqlite3.Error as err:
            raise PersistenceWriteError(f"Failed to write '{key}' to {self._db_path}: {err}") from err
