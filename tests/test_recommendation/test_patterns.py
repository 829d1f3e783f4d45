"""Tests for medication pattern analysis."""

from datetime import datetime, timezone

import pytest

from conftest import NOW, insulin

from insulin_advisor.recommendation.patterns import (
    LIMITED_PATTERN_DATA,
    NO_PATTERN_DATA,
    TimeOfDay,
    analyze_medication_patterns,
    most_common_brand,
    parse_dose,
    time_of_day,
)


def at_utc(hour: int, value: str = "8", brand: str = "Actrapid"):
    # NOW is 14:00 UTC, so hours_ago = 14 - hour lands on that UTC hour today
    return insulin(14 - hour, value=value, brand=brand)


class TestTimeOfDay:
    @pytest.mark.parametrize(
        "hour,expected",
        [
            (6, TimeOfDay.MORNING),
            (11, TimeOfDay.MORNING),
            (12, TimeOfDay.AFTERNOON),
            (17, TimeOfDay.AFTERNOON),
            (18, TimeOfDay.EVENING),
            (2, TimeOfDay.EVENING),
        ],
    )
    def test_buckets(self, hour, expected):
        instant = datetime(2026, 6, 15, hour, 30, tzinfo=timezone.utc)
        assert time_of_day(instant, "UTC") == expected

    def test_uses_local_hour(self):
        # 14:00 UTC is 10:00 in New York during daylight saving time
        assert time_of_day(NOW, "UTC") == TimeOfDay.AFTERNOON
        assert time_of_day(NOW, "America/New_York") == TimeOfDay.MORNING


class TestAnalyzeMedicationPatterns:
    def test_no_entries(self):
        assert analyze_medication_patterns([]) == NO_PATTERN_DATA

    def test_morning_pattern_and_dose_range(self):
        entries = [at_utc(7, "7"), at_utc(8, "8"), at_utc(9, "9")]

        result = analyze_medication_patterns(entries, "UTC")

        lines = result.split("\n")
        assert lines[0] == "Morning (6 AM - 12 PM): Primarily uses Actrapid (3 entries)"
        assert lines[1] == "Recent dose range: 7-9 IU (average: 8.0 IU)"

    def test_one_line_per_bucket(self):
        entries = [at_utc(8, brand="Actrapid"), at_utc(13, brand="Humalog"), at_utc(20, brand="Lantus")]

        result = analyze_medication_patterns(entries, "UTC")

        assert "Morning (6 AM - 12 PM): Primarily uses Actrapid (1 entries)" in result
        assert "Afternoon (12 PM - 6 PM): Primarily uses Humalog (1 entries)" in result
        assert "Evening/Night (6 PM - 6 AM): Primarily uses Lantus (1 entries)" in result

    def test_dose_range_uses_five_most_recent(self):
        values = ["10", "10", "10", "10", "10", "40"]
        entries = [insulin(i + 1, value=v) for i, v in enumerate(values)]

        result = analyze_medication_patterns(entries, "UTC")

        assert "Recent dose range: 10-10 IU (average: 10.0 IU)" in result

    def test_unparsable_doses_are_skipped(self):
        entries = [insulin(1, value="about eight"), insulin(2, value="7.5 IU")]

        result = analyze_medication_patterns(entries, "UTC")

        assert "Recent dose range: 7.5-7.5 IU (average: 7.5 IU)" in result

    def test_no_brands_and_no_doses(self):
        entries = [insulin(1, value="n/a", brand=None)]

        assert analyze_medication_patterns(entries, "UTC") == LIMITED_PATTERN_DATA

    def test_timezone_moves_bucket(self):
        entries = [insulin(0, brand="Actrapid")]  # 14:00 UTC

        assert "Afternoon" in analyze_medication_patterns(entries, "UTC")
        assert "Morning" in analyze_medication_patterns(entries, "America/New_York")


class TestMostCommonBrand:
    def test_majority_wins(self):
        entries = [at_utc(8, brand="Humalog"), at_utc(9, brand="Actrapid"), at_utc(10, brand="Actrapid")]
        assert most_common_brand(entries) == "Actrapid"

    def test_tie_goes_to_first_encountered(self):
        entries = [at_utc(8, brand="Humalog"), at_utc(9, brand="Actrapid")]
        assert most_common_brand(entries) == "Humalog"

    def test_blank_brands_ignored(self):
        entries = [at_utc(8, brand="  "), at_utc(9, brand=None)]
        assert most_common_brand(entries) is None


@pytest.mark.parametrize(
    "value,expected",
    [("8", 8.0), ("7.5 IU", 7.5), (" 12units", 12.0), ("abc", None), ("", None)],
)
def test_parse_dose(value, expected):
    assert parse_dose(value) == expected
