"""Display formatting shared by the scan session and the CLI."""

from __future__ import annotations

from datetime import datetime


def format_timestamp(time: datetime) -> str:
    """Format as ``YYYY-MM-DD · h:mm AM`` on a 12-hour clock."""
    hour = time.hour % 12 or 12
    period = "PM" if time.hour >= 12 else "AM"
    return f"{time:%Y-%m-%d} · {hour}:{time.minute:02d} {period}"


def local_time(time: datetime) -> datetime:
    """Convert an aware timestamp to local time; naive ones are taken as local."""
    if time.tzinfo is None:
        return time
    return time.astimezone()
