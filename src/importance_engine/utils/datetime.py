"""DateTime utilities for the project."""

from datetime import datetime, timezone, tzinfo
from typing import Union
import time
import zoneinfo

Timestamp = Union[datetime, float, int, str]


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


def to_epoch_seconds(value: Timestamp | None, default: float | None = None) -> float:
    """Convert ``value`` to seconds since the epoch.

    Accepts aware or naive datetimes (naive is read as UTC), numbers, numeric
    strings such as ``"1700000000.123456"`` and ISO 8601 strings. Anything
    unparseable falls back to ``default`` (or the current time).
    """
    fallback = time.time() if default is None else float(default)
    if value is None:
        return fallback
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return float(text)
        except ValueError:
            pass
        try:
            return to_epoch_seconds(datetime.fromisoformat(text.replace("Z", "+00:00")), fallback)
        except ValueError:
            return fallback
    return fallback


def resolve_tz(name: str | None) -> tzinfo | None:
    """Return a tzinfo for ``name``; ``None`` means host local time."""
    if name is None:
        return None
    if name.upper() == "UTC":
        return timezone.utc
    return zoneinfo.ZoneInfo(name)


def version_stamp(now: datetime | None = None) -> str:
    """Return a sortable timestamp string with microsecond resolution."""
    return (now or datetime.now()).strftime("%Y%m%d%H%M%S%f")
