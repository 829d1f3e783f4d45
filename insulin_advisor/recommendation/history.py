"""History window selection and minimum-history checks."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from insulin_advisor.models.entry import Entry

DEFAULT_WINDOW_HOURS = 72
DEFAULT_RECENT_HOURS = 24
DEFAULT_MIN_ENTRIES = 3


@dataclass
class HistoryWindow:
    """Entries relevant to a recommendation, plus the sufficiency verdict.

    ``recent_entries`` holds everything inside the lookback window, newest
    first; ``most_recent`` and ``older`` split it at the recent-hours mark.
    """

    recent_entries: list[Entry]
    most_recent: list[Entry]
    older: list[Entry]
    total_entries: int
    has_sufficient_history: bool
    message: str
    now: datetime
    warnings: list[str] = field(default_factory=list)

    @property
    def insulin_entries(self) -> list[Entry]:
        return [e for e in self.recent_entries if e.entry_type == "insulin"]

    @property
    def glucose_entries(self) -> list[Entry]:
        return [e for e in self.recent_entries if e.entry_type == "glucose"]


def check_sufficient_history(
    entries: Sequence[Entry],
    now: datetime,
    min_entries: int = DEFAULT_MIN_ENTRIES,
    recent_hours: int = DEFAULT_RECENT_HOURS,
) -> tuple[bool, str]:
    """Decide whether a patient's full history supports a recommendation.

    Checks run in order and the first failure wins: no entries at all, fewer
    than ``min_entries``, then nothing older than ``recent_hours``.
    """
    total = len(entries)

    if total == 0:
        return (
            False,
            "No patient history found. Please add at least 1 day of glucose readings, "
            "meals, and insulin doses before getting recommendations.",
        )

    if total < min_entries:
        return (
            False,
            f"Only {total} {'entry' if total == 1 else 'entries'} found. Please add at least "
            f"{min_entries} entries (glucose, meals, insulin) over at least 1 day before "
            "getting recommendations.",
        )

    one_day_ago = now - timedelta(hours=recent_hours)
    if not any(e.occurred_at < one_day_ago for e in entries):
        return (
            False,
            "All entries are from today. Please add entries from at least 1 day ago to "
            "provide better context for recommendations.",
        )

    return True, "Sufficient history available for recommendations."


def select_history_window(
    entries: Sequence[Entry],
    now: datetime,
    window_hours: int = DEFAULT_WINDOW_HOURS,
    recent_hours: int = DEFAULT_RECENT_HOURS,
    min_entries: int = DEFAULT_MIN_ENTRIES,
) -> HistoryWindow:
    """Filter a patient's entries to the lookback window and validate them.

    Args:
        entries: All entries for the patient, in any order
        now: Reference time (tz-aware)
        window_hours: Lookback for entries shown to the model
        recent_hours: Boundary between "most recent" and "older" entries
        min_entries: Minimum all-time entry count

    Returns:
        HistoryWindow with sorted sub-windows and the sufficiency verdict
    """
    window_start = now - timedelta(hours=window_hours)
    recent_start = now - timedelta(hours=recent_hours)

    in_window = sorted(
        (e for e in entries if e.occurred_at >= window_start),
        key=lambda e: e.occurred_at,
        reverse=True,
    )
    most_recent = [e for e in in_window if e.occurred_at >= recent_start]
    older = [e for e in in_window if e.occurred_at < recent_start]

    sufficient, message = check_sufficient_history(
        entries, now, min_entries=min_entries, recent_hours=recent_hours
    )

    warnings = []
    future = [e for e in in_window if e.occurred_at > now]
    if future:
        warnings.append(f"{len(future)} entries are dated in the future")

    return HistoryWindow(
        recent_entries=in_window,
        most_recent=most_recent,
        older=older,
        total_entries=len(entries),
        has_sufficient_history=sufficient,
        message=message,
        now=now,
        warnings=warnings,
    )
