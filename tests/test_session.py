"""Tests for the scan session state machine."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence, Set
from datetime import UTC, datetime
from typing import Any

import pytest

from nfc_reader.domain.errors import (
    PersistenceWriteError,
    PlatformError,
    PlatformSessionError,
    PlatformUnavailable,
)
from nfc_reader.domain.interfaces import DiscoveryCallback
from nfc_reader.domain.models import (
    LogEntry,
    PollingMode,
    ScanOutcome,
    SessionSnapshot,
    SessionState,
)
from nfc_reader.engine.session import (
    STATUS_AVAILABILITY_ERROR,
    STATUS_CHECKING,
    STATUS_PAUSED,
    STATUS_READY,
    STATUS_SCANNING,
    STATUS_START_ERROR,
    STATUS_UNAVAILABLE,
    ScanAttempt,
    ScanSession,
)
from nfc_reader.storage.log_store import LogStore, serialize_entry


class MemoryListStore:
    def __init__(self) -> None:
        self.data: dict[str, list[str]] = {}
        self.fail_writes = False

    async def get_string_list(self, key: str) -> list[str] | None:
        return self.data.get(key)

    async def set_string_list(self, key: str, values: Sequence[str]) -> None:
        if self.fail_writes:
            raise PersistenceWriteError("disk full")
        self.data[key] = list(values)


class FakeRadio:
    """Radio that listens until tapped or stopped."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.availability_error: PlatformError | None = None
        self.start_error: PlatformError | None = None
        self.stop_error: Exception | None = None
        self.start_calls: list[frozenset[PollingMode]] = []
        self.stop_calls = 0
        self.callback: DiscoveryCallback | None = None
        self.listening = asyncio.Event()
        self._closed: asyncio.Event | None = None

    async def is_available(self) -> bool:
        if self.availability_error is not None:
            raise self.availability_error
        return self.available

    async def start_session(
        self, polling_modes: Set[PollingMode], on_discovered: DiscoveryCallback
    ) -> None:
        self.start_calls.append(frozenset(polling_modes))
        if self.start_error is not None:
            raise self.start_error
        self.callback = on_discovered
        self._closed = asyncio.Event()
        self.listening.set()
        try:
            await self._closed.wait()
        finally:
            self._closed = None
            self.listening.clear()

    async def stop_session(self) -> None:
        self.stop_calls += 1
        if self.stop_error is not None:
            raise self.stop_error
        if self._closed is not None:
            self._closed.set()

    def tap(self, tag_data: dict[str, Any]) -> None:
        """Report a tag, then stop like the platform driver does."""
        assert self.callback is not None
        self.callback(tag_data)
        if self._closed is not None:
            self._closed.set()


class ReportThenReturnRadio(FakeRadio):
    """Reports a tag from inside start_session and returns straight away."""

    def __init__(self, tag_data: dict[str, Any], error: PlatformError | None = None) -> None:
        super().__init__()
        self.tag_data = tag_data
        self.error = error

    async def start_session(
        self, polling_modes: Set[PollingMode], on_discovered: DiscoveryCallback
    ) -> None:
        self.start_calls.append(frozenset(polling_modes))
        on_discovered(self.tag_data)
        if self.error is not None:
            raise self.error


class EarlyReturnRadio(FakeRadio):
    """start_session returns without ever reporting a tag."""

    async def start_session(
        self, polling_modes: Set[PollingMode], on_discovered: DiscoveryCallback
    ) -> None:
        self.start_calls.append(frozenset(polling_modes))


class ThreadedRadio(FakeRadio):
    """Reports the tag from a worker thread, as native drivers do."""

    def __init__(self, tag_data: dict[str, Any]) -> None:
        super().__init__()
        self.tag_data = tag_data

    async def start_session(
        self, polling_modes: Set[PollingMode], on_discovered: DiscoveryCallback
    ) -> None:
        self.start_calls.append(frozenset(polling_modes))
        await asyncio.to_thread(on_discovered, self.tag_data)


def _text_tag(text: str) -> dict[str, Any]:
    return {
        "nfca": {"identifier": [4, 1, 2, 3]},
        "ndef": {"cachedMessage": {"records": [{"payload": [2, *text.encode()]}]}},
    }


def _fixed_clock() -> datetime:
    return datetime(2026, 1, 2, 15, 4)


def _make_session(
    radio: FakeRadio,
    store: MemoryListStore | None = None,
    on_unavailable: Any = None,
) -> ScanSession:
    return ScanSession(
        radio=radio,
        log_store=LogStore(store or MemoryListStore()),
        clock=_fixed_clock,
        on_unavailable=on_unavailable,
    )


async def _start_scanning(session: ScanSession, radio: FakeRadio) -> asyncio.Task[None]:
    task = asyncio.create_task(session.toggle())
    await radio.listening.wait()
    return task


class TestScanAttempt:
    def test_resolves_once(self) -> None:
        attempt = ScanAttempt(1)
        assert attempt.pending
        assert attempt.resolve(ScanOutcome.DISCOVERED) is True
        assert attempt.resolve(ScanOutcome.FAILED) is False
        assert attempt.outcome is ScanOutcome.DISCOVERED

    def test_cannot_resolve_to_pending(self) -> None:
        with pytest.raises(ValueError):
            ScanAttempt(1).resolve(ScanOutcome.PENDING)


class TestAvailability:
    def test_initial_state(self) -> None:
        session = _make_session(FakeRadio())
        assert session.state is SessionState.UNKNOWN
        assert session.status == STATUS_CHECKING
        assert session.outcome is None

    def test_available(self) -> None:
        session = _make_session(FakeRadio(available=True))
        assert asyncio.run(session.check_availability()) is True
        assert session.state is SessionState.IDLE
        assert session.status == STATUS_READY

    def test_unavailable(self) -> None:
        session = _make_session(FakeRadio(available=False))
        assert asyncio.run(session.check_availability()) is False
        assert session.state is SessionState.UNAVAILABLE
        assert session.status == STATUS_UNAVAILABLE

    def test_platform_error_message_becomes_status(self) -> None:
        radio = FakeRadio()
        radio.availability_error = PlatformUnavailable("NFC is turned off")
        session = _make_session(radio)
        assert asyncio.run(session.check_availability()) is False
        assert session.state is SessionState.UNAVAILABLE
        assert session.status == "NFC is turned off"

    def test_platform_error_without_message(self) -> None:
        radio = FakeRadio()
        radio.availability_error = PlatformError()
        session = _make_session(radio)
        asyncio.run(session.check_availability())
        assert session.status == STATUS_AVAILABILITY_ERROR

    def test_bootstrap_loads_history_then_checks(self) -> None:
        store = MemoryListStore()
        seed = LogStore(store)
        asyncio.run(seed.append(_seed_entry()))

        session = _make_session(FakeRadio(), store=store)
        snapshot = asyncio.run(session.bootstrap())
        assert snapshot.state is SessionState.IDLE
        assert len(snapshot.history) == 1

    def test_recheck_while_scanning_keeps_state(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.available = False
            assert await session.check_availability() is False
            assert session.state is SessionState.SCANNING
            assert session.status == STATUS_SCANNING
            await session.stop()
            await task
            await session.close()

        asyncio.run(run())


class TestToggle:
    def test_unavailable_shows_notice_and_does_not_start(self) -> None:
        radio = FakeRadio(available=False)
        notices: list[bool] = []
        session = _make_session(radio, on_unavailable=lambda: notices.append(True))

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()

        asyncio.run(run())
        assert radio.start_calls == []
        assert notices == [True]
        assert session.state is SessionState.UNAVAILABLE
        assert session.status == STATUS_UNAVAILABLE

    def test_toggle_rechecks_before_first_scan(self) -> None:
        radio = FakeRadio(available=False)
        notices: list[bool] = []
        session = _make_session(radio, on_unavailable=lambda: notices.append(True))
        asyncio.run(session.toggle())
        assert notices == [True]
        assert radio.start_calls == []

    def test_recovers_when_radio_becomes_available(self) -> None:
        radio = FakeRadio(available=False)
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            assert session.state is SessionState.UNAVAILABLE
            radio.available = True
            task = await _start_scanning(session, radio)
            assert session.state is SessionState.SCANNING
            await session.toggle()
            await task
            await session.close()

        asyncio.run(run())
        assert len(radio.start_calls) == 1

    def test_toggle_while_scanning_stops(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            assert session.state is SessionState.SCANNING
            assert session.status == STATUS_SCANNING
            await session.toggle()
            await task
            await session.close()

        asyncio.run(run())
        assert session.state is SessionState.IDLE
        assert session.status == STATUS_PAUSED
        assert radio.stop_calls == 1
        assert session.outcome is ScanOutcome.FAILED

    def test_toggle_stops_scan_after_recheck_reports_unavailable(self) -> None:
        radio = FakeRadio()
        notices: list[bool] = []
        session = _make_session(radio, on_unavailable=lambda: notices.append(True))

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.available = False
            await session.check_availability()
            await session.toggle()
            await task
            await session.close()

        asyncio.run(run())
        assert radio.stop_calls >= 1
        assert session.state is SessionState.IDLE
        assert session.status == STATUS_PAUSED
        assert session.outcome is ScanOutcome.FAILED
        assert notices == []

    def test_requests_both_polling_modes(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            await session.stop()
            await task
            await session.close()

        asyncio.run(run())
        assert radio.start_calls == [frozenset({PollingMode.ISO14443, PollingMode.ISO15693})]

    def test_start_while_scanning_is_refused(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            with pytest.raises(RuntimeError):
                await session.start()
            await session.stop()
            await task
            await session.close()

        asyncio.run(run())
        assert len(radio.start_calls) == 1


class TestDiscovery:
    def test_open_door_scenario(self) -> None:
        radio = FakeRadio()
        store = MemoryListStore()
        session = _make_session(radio, store=store)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Open Door"))
            await task
            await session.close()

        asyncio.run(run())
        assert len(session.history) == 1
        assert session.history[0].summary == "NDEF text: Open Door"
        assert session.last_entry == session.history[0]
        assert session.state is SessionState.IDLE
        assert session.status == "Tag captured at 2026-01-02 · 3:04 PM"
        assert session.outcome is ScanOutcome.DISCOVERED
        assert store.data["nfc_logs"] == [serialize_entry(session.history[0])]

    def test_session_stops_radio_after_discovery(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Hi"))
            await task
            await session.close()

        asyncio.run(run())
        assert radio.stop_calls == 1

    def test_stop_error_after_discovery_is_swallowed(self) -> None:
        radio = FakeRadio()
        radio.stop_error = PlatformSessionError("Session already closed.")
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Hi"))
            await task
            await session.close()

        asyncio.run(run())
        assert session.state is SessionState.IDLE
        assert session.history[0].summary == "NDEF text: Hi"

    def test_discovery_before_start_returns_is_not_clobbered(self) -> None:
        radio = ReportThenReturnRadio(_text_tag("Fast"))
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            await session.close()

        asyncio.run(run())
        assert session.outcome is ScanOutcome.DISCOVERED
        assert session.state is SessionState.IDLE
        assert session.status.startswith("Tag captured at ")
        assert session.history[0].summary == "NDEF text: Fast"

    def test_discovery_wins_over_later_platform_error(self) -> None:
        radio = ReportThenReturnRadio(_text_tag("First"), error=PlatformSessionError("boom"))
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            await session.close()

        asyncio.run(run())
        assert session.outcome is ScanOutcome.DISCOVERED
        assert session.status.startswith("Tag captured at ")
        assert len(session.history) == 1

    def test_discovery_from_worker_thread(self) -> None:
        radio = ThreadedRadio(_text_tag("Threaded"))
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            await session.close()

        asyncio.run(run())
        assert session.outcome is ScanOutcome.DISCOVERED
        assert session.history[0].summary == "NDEF text: Threaded"

    def test_late_discovery_after_stop_is_ignored(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            stale_callback = radio.callback
            await session.toggle()
            await task
            assert stale_callback is not None
            stale_callback(_text_tag("Too late"))
            await session.close()

        asyncio.run(run())
        assert session.history == ()
        assert session.status == STATUS_PAUSED
        assert session.outcome is ScanOutcome.FAILED

    def test_write_failure_reports_and_keeps_history(self) -> None:
        radio = FakeRadio()
        store = MemoryListStore()
        store.fail_writes = True
        session = _make_session(radio, store=store)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Lost"))
            await task
            await session.close()

        asyncio.run(run())
        assert session.state is SessionState.IDLE
        assert session.status == "Failed to save scan: disk full"
        assert session.history == ()
        assert session.last_entry is None
        assert radio.stop_calls == 1


class TestStartFailures:
    def test_platform_error_message_becomes_status(self) -> None:
        radio = FakeRadio()
        radio.start_error = PlatformSessionError("Hardware busy")
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            await session.close()

        asyncio.run(run())
        assert session.state is SessionState.IDLE
        assert session.status == "Hardware busy"
        assert session.outcome is ScanOutcome.FAILED

    def test_platform_error_without_message(self) -> None:
        radio = FakeRadio()
        radio.start_error = PlatformSessionError()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            await session.close()

        asyncio.run(run())
        assert session.status == STATUS_START_ERROR

    def test_early_return_resets_to_ready(self) -> None:
        radio = EarlyReturnRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            await session.close()

        asyncio.run(run())
        assert session.state is SessionState.IDLE
        assert session.status == STATUS_READY
        assert session.outcome is ScanOutcome.FAILED
        assert session.history == ()

    def test_next_scan_after_failure(self) -> None:
        radio = FakeRadio()
        radio.start_error = PlatformSessionError("Hardware busy")
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.toggle()
            radio.start_error = None
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Second try"))
            await task
            await session.close()

        asyncio.run(run())
        assert session.outcome is ScanOutcome.DISCOVERED
        assert session.history[0].summary == "NDEF text: Second try"


class TestStopAndClose:
    def test_stop_swallows_radio_errors(self) -> None:
        radio = FakeRadio()
        radio.stop_error = PlatformSessionError("not open")
        session = _make_session(radio)
        asyncio.run(session.stop())
        assert session.state is SessionState.IDLE
        assert session.status == STATUS_PAUSED
        assert radio.stop_calls == 1

    def test_double_stop_is_benign(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.stop()
            await session.stop()

        asyncio.run(run())
        assert session.state is SessionState.IDLE
        assert radio.stop_calls == 2

    def test_close_while_scanning_stops_radio(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            await session.close()
            await task

        asyncio.run(run())
        assert radio.stop_calls == 1
        assert session.state is SessionState.IDLE
        assert session.outcome is ScanOutcome.FAILED

    def test_close_when_idle_does_not_stop(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        async def run() -> None:
            await session.bootstrap()
            await session.close()

        asyncio.run(run())
        assert radio.stop_calls == 0


class TestSubscribe:
    def test_listener_sees_each_transition(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)
        seen: list[SessionSnapshot] = []
        session.subscribe(seen.append)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Observed"))
            await task
            await session.close()

        asyncio.run(run())
        assert [s.state for s in seen] == [
            SessionState.IDLE,
            SessionState.SCANNING,
            SessionState.IDLE,
        ]
        assert seen[1].scanning
        assert len(seen[-1].history) == 1

    def test_failing_listener_does_not_break_scan(self) -> None:
        radio = FakeRadio()
        session = _make_session(radio)

        def broken(snapshot: SessionSnapshot) -> None:
            raise RuntimeError("render failed")

        session.subscribe(broken)

        async def run() -> None:
            await session.bootstrap()
            task = await _start_scanning(session, radio)
            radio.tap(_text_tag("Still saved"))
            await task
            await session.close()

        asyncio.run(run())
        assert session.outcome is ScanOutcome.DISCOVERED
        assert session.state is SessionState.IDLE
        assert session.history[0].summary == "NDEF text: Still saved"

    def test_unsubscribe(self) -> None:
        session = _make_session(FakeRadio())
        seen: list[SessionSnapshot] = []
        unsubscribe = session.subscribe(seen.append)
        unsubscribe()
        asyncio.run(session.check_availability())
        assert seen == []


def _seed_entry() -> LogEntry:
    return LogEntry(datetime(2026, 1, 1, tzinfo=UTC), "Tag detected", "{}")
