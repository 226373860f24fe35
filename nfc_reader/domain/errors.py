"""Error taxonomy for the NFC reader.

Platform errors come from the radio and carry a human-readable message
that the scan session shows as status text. Persistence errors come from
the string-list store or from corrupt stored records.
"""

from __future__ import annotations


class NfcReaderError(Exception):
    """Base class for all NFC reader errors."""


class PlatformError(NfcReaderError):
    """The radio driver rejected a call."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message


class PlatformUnavailable(PlatformError):
    """The radio hardware is disabled or unsupported."""


class PlatformSessionError(PlatformError):
    """Starting or stopping a session was rejected by the OS layer."""


class PersistenceError(NfcReaderError):
    """The string-list store failed, or a stored record is corrupt."""


class PersistenceReadError(PersistenceError):
    """Reading from the string-list store failed."""


class PersistenceWriteError(PersistenceError):
    """Writing to the string-list store failed."""


class ParseError(PersistenceError):
    """A stored history record could not be parsed."""


class ConfigError(NfcReaderError, ValueError):
    """The settings file is structurally invalid."""
