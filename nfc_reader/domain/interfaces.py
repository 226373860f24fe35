"""Collaborator interfaces.

These are pure protocols: no radio driver or storage details leak into
the domain. Every method is a coroutine.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence, Set
from typing import Protocol

from nfc_reader.domain.models import PollingMode, TagData

DiscoveryCallback = Callable[[TagData], None]


class TagRadio(Protocol):
    """The device's tag radio."""

    async def is_available(self) -> bool:
        """Return True if the radio is present and enabled.

        Raises PlatformError if availability cannot be determined.
        """
        ...

    async def start_session(
        self,
        polling_modes: Set[PollingMode],
        on_discovered: DiscoveryCallback,
    ) -> None:
        """Listen for a tag and call ``on_discovered`` with its raw data.

        Stays pending while the radio listens. Returns once the radio has
        stopped, either on its own after the first tag or via
        ``stop_session``. Raises PlatformError if the session is rejected.
        """
        ...

    async def stop_session(self) -> None:
        """End the current session. May raise if none is open."""
        ...


class StringListStore(Protocol):
    """Key-value persistence of string lists."""

    async def get_string_list(self, key: str) -> list[str] | None:
        """Return the list stored under key, or None if never written.

        Raises PersistenceReadError on storage failure.
        """
        ...

    async def set_string_list(self, key: str, values: Sequence[str]) -> None:
        """Replace the whole list under key in one step.

        Raises PersistenceWriteError on storage failure.
        """
        ...
