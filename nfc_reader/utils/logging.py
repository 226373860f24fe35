"""Root logger setup with environment overrides."""

from __future__ import annotations

import logging
import os

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DEFAULT_DATEFMT = "%H:%M:%S"
LEVEL_ENV_VAR = "NFC_READER_LOG_LEVEL"
DEBUG_ENV_VAR = "NFC_READER_DEBUG"


def _coerce_level(value: str | None, fallback: int) -> int:
    if not value or not value.strip():
        return fallback
    text = value.strip()
    if text.isdigit():
        return int(text)
    candidate = logging.getLevelName(text.upper())
    return candidate if isinstance(candidate, int) else fallback


def _env_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def resolve_env_level() -> int | None:
    """Level forced by the environment, or None."""
    value = os.getenv(LEVEL_ENV_VAR)
    if value:
        return _coerce_level(value, logging.INFO)
    if _env_truthy(os.getenv(DEBUG_ENV_VAR)):
        return logging.DEBUG
    return None


def configure_root(default_level: int | str = logging.WARNING) -> int:
    """Configure the root logger with a compact format.

    Environment overrides:
      - NFC_READER_LOG_LEVEL: explicit log level (name or number)
      - NFC_READER_DEBUG: truthy -> DEBUG

    Returns the effective level.
    """
    fallback = (
        _coerce_level(default_level, logging.WARNING)
        if isinstance(default_level, str)
        else int(default_level)
    )
    env_level = resolve_env_level()
    effective = env_level if env_level is not None else fallback

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=effective, format=_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT)
    root.setLevel(effective)
    return effective
