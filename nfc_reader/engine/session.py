"""Scan session — availability checks and the discover/stop protocol.

State machine:
  UNKNOWN      → UNAVAILABLE | IDLE     (availability check)
  UNAVAILABLE  → IDLE                   (successful re-check)
  IDLE         ⇄ SCANNING               (start / discovery, stop, failure)

Each start opens a ScanAttempt whose outcome is resolved exactly once:
DISCOVERED by the first tag, or FAILED by a platform error, a stop, or
the start call unwinding without either. The radio's discovery callback
only posts a message into the session inbox; a single consumer task
applies it, so every state change happens on the event loop in order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Set
from dataclasses import dataclass, field
from datetime import UTC, datetime

from nfc_reader.domain.errors import PersistenceWriteError, PlatformError
from nfc_reader.domain.interfaces import TagRadio
from nfc_reader.domain.models import (
    DEFAULT_POLLING_MODES,
    LogEntry,
    LogHistory,
    PollingMode,
    ScanOutcome,
    SessionSnapshot,
    SessionState,
    TagData,
)
from nfc_reader.engine.formatting import format_timestamp, local_time
from nfc_reader.engine.summarizer import build_log_entry
from nfc_reader.storage.log_store import LogStore

logger = logging.getLogger(__name__)

STATUS_CHECKING = "Checking NFC availability..."
STATUS_READY = "Tap the circle to start scanning"
STATUS_UNAVAILABLE = "NFC is unavailable. Enable it in system settings."
STATUS_AVAILABILITY_ERROR = "Unable to determine NFC availability."
STATUS_SCANNING = "Hold your device near an NFC tag"
STATUS_START_ERROR = "Failed to start NFC session."
STATUS_PAUSED = "Scanning paused. Tap the circle to resume"


def status_captured(timestamp: datetime) -> str:
    return f"Tag captured at {format_timestamp(local_time(timestamp))}"


def status_save_failed(err: Exception) -> str:
    return f"Failed to save scan: {err}"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ScanAttempt:
    """Single-assignment completion cell for one started session."""

    def __init__(self, attempt_id: int) -> None:
        self.attempt_id = attempt_id
        self._outcome = ScanOutcome.PENDING

    @property
    def outcome(self) -> ScanOutcome:
        return self._outcome

    @property
    def pending(self) -> bool:
        return self._outcome is ScanOutcome.PENDING

    def resolve(self, outcome: ScanOutcome) -> bool:
        """Resolve the attempt. Returns False if it was already resolved."""
        if outcome is ScanOutcome.PENDING:
            raise ValueError("An attempt cannot be resolved to PENDING")
        if not self.pending:
            return False
        self._outcome = outcome
        return True


@dataclass(frozen=True)
class TagDiscovered:
    """Inbox message: the radio reported a tag for an attempt."""

    attempt_id: int
    tag_data: TagData = field(repr=False)


SnapshotListener = Callable[[SessionSnapshot], None]


class ScanSession:
    """Drives one radio on behalf of the UI and records discoveries."""

    def __init__(
        self,
        radio: TagRadio,
        log_store: LogStore,
        polling_modes: Set[PollingMode] = DEFAULT_POLLING_MODES,
        clock: Callable[[], datetime] = _utc_now,
        on_unavailable: Callable[[], None] | None = None,
    ) -> None:
        self._radio = radio
        self._log_store = log_store
        self._polling_modes = frozenset(polling_modes)
        self._clock = clock
        self._on_unavailable = on_unavailable

        self._state = SessionState.UNKNOWN
        self._status = STATUS_CHECKING
        self._available: bool | None = None
        self._listeners: list[SnapshotListener] = []

        self._attempt: ScanAttempt | None = None
        self._attempt_count = 0
        self._last_entry: LogEntry | None = None
        self._inbox: asyncio.Queue[TagDiscovered] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumer: asyncio.Task[None] | None = None

    # -- observation ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> str:
        return self._status

    @property
    def history(self) -> LogHistory:
        return self._log_store.history

    @property
    def outcome(self) -> ScanOutcome | None:
        return self._attempt.outcome if self._attempt is not None else None

    @property
    def last_entry(self) -> LogEntry | None:
        """The most recent entry this session recorded successfully."""
        return self._last_entry

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(state=self._state, status=self._status, history=self.history)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call listener after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_state(self, state: SessionState, status: str) -> None:
        if state is not self._state:
            logger.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state
        self._status = status
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener failed")

    # -- operations ----------------------------------------------------------

    async def bootstrap(self) -> SessionSnapshot:
        """Load stored history, then check availability."""
        await self._log_store.load()
        await self.check_availability()
        return self.snapshot()

    async def check_availability(self) -> bool:
        """Probe the radio. Platform errors count as unavailable."""
        try:
            available = await self._radio.is_available()
            status = STATUS_READY if available else STATUS_UNAVAILABLE
        except PlatformError as err:
            logger.warning("Availability check failed: %s", err)
            available = False
            status = err.message or STATUS_AVAILABILITY_ERROR

        self._available = available
        if self._state is SessionState.SCANNING:
            # An open session keeps its state; only the flag is refreshed.
            return available
        self._set_state(SessionState.IDLE if available else SessionState.UNAVAILABLE, status)
        return available

    async def toggle(self) -> None:
        """Start scanning, or stop if already scanning."""
        if not self._available and self._state is not SessionState.SCANNING:
            if not await self.check_availability():
                if self._on_unavailable is not None:
                    self._on_unavailable()
                return

        if self._state is SessionState.SCANNING:
            await self.stop()
        else:
            await self.start()

    async def start(self) -> None:
        """Open a radio session and wait for it to end.

        Returns once the radio session has ended. The outcome of the
        attempt is available through ``outcome``.
        """
        if self._state is SessionState.SCANNING:
            raise RuntimeError("A scan session is already open")

        self._ensure_consumer()
        self._attempt_count += 1
        attempt = ScanAttempt(self._attempt_count)
        self._attempt = attempt

        def on_discovered(tag_data: TagData) -> None:
            self._post(TagDiscovered(attempt.attempt_id, tag_data))

        try:
            self._set_state(SessionState.SCANNING, STATUS_SCANNING)
            await self._radio.start_session(self._polling_modes, on_discovered)
        except PlatformError as err:
            logger.warning("Radio rejected scan session: %s", err)
            await self._drain()
            if attempt.resolve(ScanOutcome.FAILED):
                self._set_state(SessionState.IDLE, err.message or STATUS_START_ERROR)
        finally:
            # Completion guard. A discovery already posted wins over an
            # early exit; a resolved attempt is never overwritten.
            await asyncio.shield(self._drain())
            if attempt.resolve(ScanOutcome.FAILED):
                self._set_state(SessionState.IDLE, STATUS_READY)

    async def stop(self) -> None:
        """End the radio session, if any, and pause."""
        await self._stop_radio()
        if self._attempt is not None:
            self._attempt.resolve(ScanOutcome.FAILED)
        self._set_state(SessionState.IDLE, STATUS_PAUSED)

    async def close(self) -> None:
        """Tear down: stop an open session and release the inbox consumer."""
        if self._state is SessionState.SCANNING:
            await self._stop_radio()
            if self._attempt is not None:
                self._attempt.resolve(ScanOutcome.FAILED)
            self._set_state(SessionState.IDLE, STATUS_READY)
        if self._consumer is not None:
            await self._drain()
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
            self._inbox = None
            self._loop = None

    # -- discovery inbox -----------------------------------------------------

    def _ensure_consumer(self) -> None:
        if self._consumer is not None and not self._consumer.done():
            return
        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(self._inbox))

    def _post(self, message: TagDiscovered) -> None:
        """Deliver a message into the inbox from the loop or any thread."""
        inbox, loop = self._inbox, self._loop
        if inbox is None or loop is None:
            logger.debug("Discovery after close ignored")
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            inbox.put_nowait(message)
        else:
            loop.call_soon_threadsafe(inbox.put_nowait, message)

    async def _drain(self) -> None:
        if self._inbox is not None:
            await self._inbox.join()

    async def _consume(self, inbox: asyncio.Queue[TagDiscovered]) -> None:
        while True:
            message = await inbox.get()
            try:
                await self._handle_discovery(message)
            except Exception:
                logger.exception("Failed to handle discovered tag")
                if self._state is SessionState.SCANNING:
                    self._set_state(SessionState.IDLE, STATUS_READY)
            finally:
                inbox.task_done()

    async def _handle_discovery(self, message: TagDiscovered) -> None:
        attempt = self._attempt
        if attempt is None or attempt.attempt_id != message.attempt_id:
            logger.debug("Discovery for stale attempt %d ignored", message.attempt_id)
            return
        if not attempt.resolve(ScanOutcome.DISCOVERED):
            logger.debug("Discovery after attempt %d resolved ignored", attempt.attempt_id)
            return

        entry = build_log_entry(message.tag_data, self._clock())
        logger.info("Captured tag: %s", entry.summary)
        try:
            await self._record(entry)
        finally:
            # The radio normally stops by itself after the first tag.
            await self._stop_radio()

    async def _record(self, entry: LogEntry) -> None:
        try:
            await self._log_store.append(entry)
        except PersistenceWriteError as err:
            logger.error("Could not save scan: %s", err)
            self._set_state(SessionState.IDLE, status_save_failed(err))
            return
        self._last_entry = entry
        self._set_state(SessionState.IDLE, status_captured(entry.timestamp))

    async def _stop_radio(self) -> None:
        try:
            await self._radio.stop_session()
        except Exception as err:  # noqa: BLE001
            # Stopping a session that is already closed is not an error.
            logger.debug("Ignoring stop_session failure: %s", err)
