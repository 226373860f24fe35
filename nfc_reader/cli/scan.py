"""Scan command — wait for one tag and record it."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel

from nfc_reader.cli.runtime import build_session, current_settings
from nfc_reader.domain.models import ScanOutcome, SessionSnapshot, SessionState
from nfc_reader.engine.formatting import format_timestamp, local_time
from nfc_reader.engine.session import ScanSession

console = Console()

UNAVAILABLE_TITLE = "Enable NFC"
UNAVAILABLE_NOTICE = (
    "NFC appears to be disabled or unsupported on this device. "
    "Check your system settings and try again."
)


async def run_scan(session: ScanSession, timeout: float | None = None) -> SessionSnapshot:
    """Bootstrap, toggle once and wait for the radio session to end.

    On timeout the session is stopped explicitly.
    """
    try:
        await session.bootstrap()
        task = asyncio.create_task(session.toggle())
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError:
            await session.stop()
            await task
    finally:
        await session.close()
    return session.snapshot()


@click.command()
@click.option(
    "--tag-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory of tag dumps for the replay radio.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop scanning after this many seconds.",
)
@click.pass_context
def scan(ctx: click.Context, tag_dir: Path | None, timeout: float | None) -> None:
    """Wait for a tag, summarize it and add it to the history."""
    settings = current_settings(ctx)
    unavailable: list[bool] = []
    session = build_session(settings, tag_dir=tag_dir, on_unavailable=lambda: unavailable.append(True))

    def show(snapshot: SessionSnapshot) -> None:
        if snapshot.state is not SessionState.UNKNOWN:
            console.print(f"[dim]{snapshot.status}[/dim]")

    session.subscribe(show)
    snapshot = asyncio.run(run_scan(session, timeout))

    if unavailable:
        console.print(Panel(UNAVAILABLE_NOTICE, title=UNAVAILABLE_TITLE, border_style="yellow"))
        ctx.exit(1)

    entry = session.last_entry
    if session.outcome is not ScanOutcome.DISCOVERED or entry is None:
        console.print(f"[yellow]No tag captured.[/yellow] {snapshot.status}")
        ctx.exit(1)

    console.print(f"\n[bold green]{entry.summary}[/bold green]")
    console.print(f"[dim]{format_timestamp(local_time(entry.timestamp))}[/dim]\n")
