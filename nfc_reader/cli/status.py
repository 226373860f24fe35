"""Status command — report whether the radio can scan."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
from rich.console import Console

from nfc_reader.cli.runtime import build_session, current_settings
from nfc_reader.domain.models import SessionState

console = Console()

_STATE_COLORS = {
    SessionState.IDLE: "green",
    SessionState.UNAVAILABLE: "red",
    SessionState.SCANNING: "cyan",
    SessionState.UNKNOWN: "dim",
}


@click.command()
@click.option(
    "--tag-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory of tag dumps for the replay radio.",
)
@click.pass_context
def status(ctx: click.Context, tag_dir: Path | None) -> None:
    """Check radio availability and show the stored scan count."""
    settings = current_settings(ctx)
    session = build_session(settings, tag_dir=tag_dir)
    snapshot = asyncio.run(session.bootstrap())

    color = _STATE_COLORS[snapshot.state]
    console.print(f"[bold {color}]{snapshot.state.value}[/bold {color}] {snapshot.status}")
    console.print(f"[dim]{len(snapshot.history)} scan(s) in history[/dim]")
