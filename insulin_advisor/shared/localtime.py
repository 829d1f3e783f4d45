"""Instant-to-local-time conversion.

All time-of-day bucketing and all human-readable timestamps in prompts go
through these helpers so they always agree on the caregiver's local time.
"""

from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache(maxsize=128)
def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone.

    Raises:
        ValueError: If the name is empty or unknown
    """
    if not name:
        raise ValueError("Timezone name is empty")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def to_local(instant: datetime, tz_name: str) -> datetime:
    """Convert an instant to the given timezone. Naive instants are UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(resolve_timezone(tz_name))


def local_hour(instant: datetime, tz_name: str) -> int:
    """Hour of day (0-23) of the instant in the given timezone."""
    return to_local(instant, tz_name).hour


def format_local(instant: datetime, tz_name: str) -> str:
    """Render as e.g. ``10/19/2026, 08:00 AM EDT``."""
    return to_local(instant, tz_name).strftime("%m/%d/%Y, %I:%M %p %Z")
