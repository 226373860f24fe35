"""CLI entry point for nfc-reader."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from nfc_reader.cli.init import init
from nfc_reader.cli.logs import logs
from nfc_reader.cli.runtime import CONFIG_PATH_KEY
from nfc_reader.cli.scan import scan
from nfc_reader.cli.status import status
from nfc_reader.domain.errors import ConfigError
from nfc_reader.settings.loader import load_settings
from nfc_reader.utils.logging import configure_root


@click.group()
@click.version_option(package_name="nfc-reader")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.nfc_reader/config.yml or $NFC_READER_CONFIG).",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """NFC Reader — scan tags and keep a history of what they carry."""
    if config_path is not None:
        ctx.meta[CONFIG_PATH_KEY] = config_path
    try:
        settings = load_settings(config_path)
    except ConfigError as err:
        raise click.ClickException(str(err)) from err
    configure_root(logging.DEBUG if verbose else settings.log_level)
    ctx.obj = settings


cli.add_command(scan)
cli.add_command(status)
cli.add_command(logs)
cli.add_command(init)
