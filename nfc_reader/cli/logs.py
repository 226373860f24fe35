"""Logs command — show the scan history and raw tag data."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nfc_reader.cli.runtime import build_log_store, current_settings
from nfc_reader.domain.models import LogHistory
from nfc_reader.engine.formatting import format_timestamp, local_time
from nfc_reader.storage.log_store import serialize_entry

console = Console()


def _render_history(history: LogHistory) -> None:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("#", style="dim", width=3, justify="right")
    table.add_column("Captured", style="dim", width=22)
    table.add_column("Summary", min_width=30)

    for index, entry in enumerate(history):
        table.add_row(str(index), format_timestamp(local_time(entry.timestamp)), entry.summary)

    console.print(table)
    console.print()


@click.command()
@click.option(
    "--raw",
    "raw_index",
    type=click.IntRange(min=0),
    default=None,
    help="Show the raw tag data of the scan at this index (0 = newest).",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    default=False,
    help="Print the stored records as JSON lines.",
)
@click.pass_context
def logs(ctx: click.Context, raw_index: int | None, as_json: bool) -> None:
    """List past scans, newest first."""
    settings = current_settings(ctx)
    log_store = build_log_store(settings)
    history = asyncio.run(log_store.load())

    if as_json:
        for entry in history:
            click.echo(serialize_entry(entry))
        return

    if not history:
        console.print("[bold]No scans yet[/bold]")
        console.print("[dim]Your NFC scans will appear here once you read your first tag.[/dim]")
        return

    if raw_index is not None:
        if raw_index >= len(history):
            raise click.BadParameter(
                f"only {len(history)} scan(s) in history", param_hint="'--raw'"
            )
        entry = history[raw_index]
        console.print(Panel(Text(entry.raw_payload), title="Raw Tag Data", expand=False))
        return

    console.print(f"\n[bold]Scans[/bold] — {len(history)} of {log_store.capacity} kept\n")
    _render_history(history)
