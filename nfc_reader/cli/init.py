"""Init command — write a settings file and a sample tag dump."""

from __future__ import annotations

import json

import click
from rich.console import Console

from nfc_reader.cli.runtime import CONFIG_PATH_KEY, current_settings
from nfc_reader.settings.loader import default_settings_path
from nfc_reader.settings.writer import save_settings

console = Console()

SAMPLE_TAG_NAME = "sample-text-tag.json"

# NTAG213 carrying a single well-known text record; payload is the
# zero language-length byte followed by the text.
SAMPLE_TAG = {
    "nfca": {"identifier": [4, 161, 178, 58, 112, 100, 128], "atqa": [68, 0], "sak": 0},
    "mifareultralight": {"identifier": [4, 161, 178, 58, 112, 100, 128], "type": 2},
    "ndef": {
        "identifier": [4, 161, 178, 58, 112, 100, 128],
        "isWritable": True,
        "maxSize": 137,
        "cachedMessage": {
            "records": [
                {
                    "typeNameFormat": 1,
                    "type": [84],
                    "identifier": [],
                    "payload": [0, *"Hello from NFC".encode()],
                }
            ]
        },
    },
}


@click.command()
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing settings file.")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Create the settings file and a sample tag dump."""
    path = ctx.meta.get(CONFIG_PATH_KEY) or default_settings_path()
    settings = current_settings(ctx)
    if path.exists() and not force:
        console.print(f"[yellow]Settings already exist at {path}[/yellow] (use --force to overwrite)")
    else:
        save_settings(settings, path)
        console.print(f"[green]Wrote settings to {path}[/green]")

    settings.tag_dir.mkdir(parents=True, exist_ok=True)
    sample = settings.tag_dir / SAMPLE_TAG_NAME
    if not sample.exists():
        sample.write_text(json.dumps(SAMPLE_TAG, indent=2), encoding="utf-8")
        console.print(f"[green]Wrote sample tag dump to {sample}[/green]")
