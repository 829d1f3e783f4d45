"""Tests for the recommendation prompt builder."""

from datetime import datetime, timezone

import pytest

from conftest import NOW, glucose, insulin, meal

from insulin_advisor.config import GlucoseTargetRanges
from insulin_advisor.models import Medication
from insulin_advisor.recommendation.history import select_history_window
from insulin_advisor.recommendation.prompt_builder import (
    RecommendationPromptBuilder,
    glucose_reading_status,
    normalize_medications,
)


@pytest.fixture
def builder():
    return RecommendationPromptBuilder()


def build(builder, patient, entries, tz_name="UTC", target_time=NOW):
    window = select_history_window(entries, NOW)
    return builder.build(patient, window, target_time, tz_name)


class TestNormalizeMedications:
    def test_json_string(self):
        meds = normalize_medications('[{"brand": "Actrapid", "dosage": "8 IU"}]')
        assert meds == [Medication(brand="Actrapid", dosage="8 IU")]

    def test_list_of_dicts(self):
        meds = normalize_medications([{"brand": "Lantus", "dosage": "20 IU", "timing": "bedtime"}])
        assert meds[0].timing == "bedtime"

    def test_list_of_models(self):
        med = Medication(brand="Humalog")
        assert normalize_medications([med]) == [med]

    @pytest.mark.parametrize("raw", [None, "", "not json", "{\"brand\": \"x\"}", [{"dosage": "1"}], 42])
    def test_unparsable_yields_empty(self, raw):
        assert normalize_medications(raw) == []


class TestGlucoseReadingStatus:
    def test_stale_when_glucose_precedes_insulin(self):
        status = glucose_reading_status([glucose(3), insulin(1)])
        assert status.is_stale

    def test_fresh_when_glucose_follows_insulin(self):
        status = glucose_reading_status([glucose(1), insulin(3)])
        assert not status.is_stale

    def test_meals_do_not_matter(self):
        status = glucose_reading_status([meal(0.5), glucose(1), insulin(3)])
        assert not status.is_stale

    def test_missing_either_is_not_stale(self):
        assert not glucose_reading_status([glucose(1)]).is_stale
        assert not glucose_reading_status([insulin(1)]).is_stale


class TestBuild:
    def test_section_order(self, builder, patient, history):
        prompt = build(builder, patient, history)

        tags = [
            "<TASK>",
            "<INSTRUCTIONS>",
            "<GLUCOSE_READING_STATUS>",
            "<CONTEXT>",
            "<PATIENT_INFO>",
            "<TARGET_TIME>",
            "<RECENT_HISTORY>",
            "<MEDICATION_PATTERN_ANALYSIS>",
            "</CONTEXT>",
            "<RESPONSE_FORMAT>",
            "<GOOD_EXAMPLE>",
            "<BAD_EXAMPLE>",
            "<FINAL_INSTRUCTIONS>",
        ]
        positions = [prompt.index(tag) for tag in tags]
        assert positions == sorted(positions)

    def test_most_recent_listed_before_older(self, builder, patient, history):
        prompt = build(builder, patient, history)

        assert prompt.index("MOST RECENT ENTRIES (Last 24 hours)") < prompt.index("OLDER ENTRIES (24-72 hours ago)")

    def test_patient_info(self, builder, patient, history):
        prompt = build(builder, patient, history)

        assert "- Name: Sam Rivera" in prompt
        assert "- Age: 36 years old" in prompt
        assert "- Diabetes Type: Type 1" in prompt
        assert "- Activity Level: Moderate" in prompt
        assert "- Usual Medications: Actrapid 8 IU (before breakfast)" in prompt

    def test_garbage_medications_do_not_break_prompt(self, builder, patient, history):
        patient = patient.model_copy(update={"usual_medications": "{{broken"})

        prompt = build(builder, patient, history)

        assert "- Usual Medications: None recorded" in prompt

    def test_target_ranges_rendered(self, patient, history):
        ranges = GlucoseTargetRanges(target_min=90, target_max=140)
        prompt = build(RecommendationPromptBuilder(ranges), patient, history)

        assert "ideal target range is 90-140 mg/dL" in prompt
        assert "very low (hypoglycemia) below 70" in prompt

    def test_brand_consistency_rule(self, builder, patient, history):
        prompt = build(builder, patient, history)

        assert "compelling clinical reason" in prompt
        assert "Primarily uses Actrapid" in prompt

    def test_fresh_reading_has_no_stale_notice(self, builder, patient, history):
        prompt = build(builder, patient, history)

        assert "stale" not in prompt.lower()
        assert "may be used as the primary basis for dosing" in prompt

    def test_stale_reading_notice(self, builder, patient):
        entries = [insulin(1, "8"), glucose(3, "210"), glucose(30), insulin(32)]

        prompt = build(builder, patient, entries)

        assert "**STALE GLUCOSE READING**" in prompt
        assert "a fresh glucose reading is needed" in prompt
        assert "210 mg/dL" in prompt

    def test_times_rendered_in_caregiver_timezone(self, builder, patient, history):
        target = datetime(2026, 6, 16, 12, 0, tzinfo=timezone.utc)

        prompt = build(builder, patient, history, tz_name="America/New_York", target_time=target)

        assert "Target Administration Time: 06/16/2026, 08:00 AM EDT" in prompt
        assert "Morning (6 AM - 12 PM)" in prompt

    def test_entry_values_include_units_and_brand(self, builder, patient, history):
        prompt = build(builder, patient, history)

        assert "<VALUE>140 mg/dL</VALUE>" in prompt
        assert "<VALUE>8 IU (Actrapid)</VALUE>" in prompt
        assert "<VALUE>Toast and eggs</VALUE>" in prompt

    def test_precomputed_pattern_analysis_is_used(self, builder, patient, history):
        window = select_history_window(history, NOW)

        prompt = builder.build(patient, window, NOW, pattern_analysis="Custom pattern line")

        assert "Custom pattern line" in prompt
