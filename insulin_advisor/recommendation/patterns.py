"""Time-of-day medication pattern analysis for insulin entries."""

import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from insulin_advisor.models.entry import Entry
from insulin_advisor.shared.localtime import local_hour

NO_PATTERN_DATA = "No recent insulin administration patterns available."
LIMITED_PATTERN_DATA = "Limited pattern data available."

RECENT_DOSE_SAMPLE = 5

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+))")


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


@dataclass(frozen=True)
class _Period:
    label: str
    hour_range: str


_PERIODS: dict[TimeOfDay, _Period] = {
    TimeOfDay.MORNING: _Period("Morning", "6 AM - 12 PM"),
    TimeOfDay.AFTERNOON: _Period("Afternoon", "12 PM - 6 PM"),
    TimeOfDay.EVENING: _Period("Evening/Night", "6 PM - 6 AM"),
}


def time_of_day(instant: datetime, tz_name: str) -> TimeOfDay:
    """Bucket an instant by its local hour in the caregiver's timezone."""
    hour = local_hour(instant, tz_name)
    if 6 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 18:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.EVENING


def normalize_brand(brand: Optional[str]) -> Optional[str]:
    if not brand:
        return None
    trimmed = brand.strip()
    return trimmed or None


def parse_dose(value: str) -> Optional[float]:
    """Leading numeric part of a dose value ("8", "7.5 IU"), or None."""
    match = _LEADING_NUMBER.match(value or "")
    if not match:
        return None
    return float(match.group(1))


def format_number(value: float) -> str:
    return f"{value:g}"


def most_common_brand(entries: Sequence[Entry]) -> Optional[str]:
    """Most frequent brand; ties go to the brand seen first in ``entries``."""
    brands = [b for b in (normalize_brand(getattr(e, "medication_brand", None)) for e in entries) if b]
    if not brands:
        return None
    # Counter keeps insertion order for equal counts
    return Counter(brands).most_common(1)[0][0]


def bucket_by_time_of_day(entries: Sequence[Entry], tz_name: str) -> dict[TimeOfDay, list[Entry]]:
    buckets: dict[TimeOfDay, list[Entry]] = {period: [] for period in TimeOfDay}
    for entry in entries:
        buckets[time_of_day(entry.occurred_at, tz_name)].append(entry)
    return buckets


def analyze_medication_patterns(insulin_entries: Sequence[Entry], tz_name: str = "UTC") -> str:
    """Summarize which insulin brand is used at which time of day.

    Args:
        insulin_entries: Insulin entries, newest first
        tz_name: Caregiver's IANA timezone used for time-of-day bucketing

    Returns:
        One line per time-of-day bucket with a known brand, then a recent
        dose range line. Returns ``NO_PATTERN_DATA`` when there are no
        insulin entries.
    """
    if not insulin_entries:
        return NO_PATTERN_DATA

    patterns = []
    buckets = bucket_by_time_of_day(insulin_entries, tz_name)
    for period, bucket in buckets.items():
        if not bucket:
            continue
        brand = most_common_brand(bucket)
        if brand:
            info = _PERIODS[period]
            patterns.append(
                f"{info.label} ({info.hour_range}): Primarily uses {brand} ({len(bucket)} entries)"
            )

    recent_doses = [
        d for d in (parse_dose(e.value) for e in insulin_entries[:RECENT_DOSE_SAMPLE]) if d is not None
    ]
    if recent_doses:
        average = sum(recent_doses) / len(recent_doses)
        patterns.append(
            f"Recent dose range: {format_number(min(recent_doses))}-{format_number(max(recent_doses))} IU "
            f"(average: {average:.1f} IU)"
        )

    return "\n".join(patterns) if patterns else LIMITED_PATTERN_DATA
