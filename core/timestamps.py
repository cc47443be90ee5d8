"""Timezone-aware UTC timestamp utilities.

Everything persisted or serialized goes through these helpers so stored
values always carry a +00:00 offset and compare correctly.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def isonow() -> str:
    """Return the current UTC time as an ISO 8601 string with +00:00 offset."""
    return now().isoformat()


def iso_in(delta: timedelta) -> str:
    """ISO timestamp `delta` from now."""
    return (now() + delta).isoformat()


def parse_timestamp(iso_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, assuming UTC if no timezone info."""
    if not iso_str:
        return None
    dt = datetime.fromisoformat(iso_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_past(iso_str: Optional[str]) -> bool:
    """True when the timestamp is missing or lies in the past."""
    dt = parse_timestamp(iso_str)
    return dt is None or dt <= now()
