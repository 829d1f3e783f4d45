"""Tests for model response parsing."""

import json

import pytest

from insulin_advisor.models import Confidence
from insulin_advisor.recommendation.parser import (
    coerce_dose,
    normalize_confidence,
    parse_model_response,
    strip_code_fence,
)


class TestParseModelResponse:
    def test_well_formed_answer(self, model_answer):
        result = parse_model_response(model_answer)

        assert result.dose_units == 9
        assert result.medication_name == "Actrapid"
        assert result.confidence == Confidence.HIGH
        assert result.recommended_monitoring == "Check glucose in 2 hours."

    def test_upper_case_confidence(self):
        result = parse_model_response('{"doseUnits": 12, "confidence": "HIGH"}')

        assert result.dose_units == 12
        assert result.confidence == Confidence.HIGH

    def test_missing_fields_are_none(self):
        result = parse_model_response('{"doseUnits": 6}')

        assert result.dose_units == 6
        assert result.medication_name is None
        assert result.confidence is None

    def test_wrongly_typed_fields_are_dropped(self):
        raw = json.dumps({"doseUnits": True, "medicationName": 12, "confidence": "sure"})

        result = parse_model_response(raw)

        assert result.dose_units is None
        assert result.medication_name is None
        assert result.confidence is None

    def test_numeric_string_dose(self):
        assert parse_model_response('{"doseUnits": "7.5"}').dose_units == 7.5

    def test_code_fenced_json(self):
        raw = '```json\n{"doseUnits": 10, "confidence": "Medium"}\n```'

        result = parse_model_response(raw)

        assert result.dose_units == 10
        assert result.confidence == Confidence.MEDIUM

    def test_malformed_json_extracts_dose(self):
        raw = 'Sure! {"doseUnits": 7.5, "medicationName": "Actrapid", oops'

        result = parse_model_response(raw)

        assert result.dose_units == 7.5
        assert result.medication_name == "Unknown"
        assert result.reasoning == raw
        assert result.safety_notes == "Unable to parse structured response"
        assert result.confidence == Confidence.LOW
        assert result.recommended_monitoring == "Please consult healthcare provider"

    def test_malformed_without_dose_uses_fallback(self):
        result = parse_model_response("I cannot help with that.")

        assert result.dose_units == 8
        assert result.confidence == Confidence.LOW

    def test_custom_fallback_dose(self):
        assert parse_model_response("nope", fallback_dose=4).dose_units == 4

    def test_non_object_json_falls_back(self):
        result = parse_model_response("[1, 2, 3]")

        assert result.medication_name == "Unknown"
        assert result.confidence == Confidence.LOW


@pytest.mark.parametrize(
    "value,expected",
    [
        ("HIGH", Confidence.HIGH),
        (" medium ", Confidence.MEDIUM),
        ("Low", Confidence.LOW),
        ("certain", None),
        (3, None),
        (None, None),
    ],
)
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [(8, 8.0), (7.5, 7.5), ("9", 9.0), (False, None), ("nan", None), ("inf", None), ([8], None)],
)
def test_coerce_dose(value, expected):
    assert coerce_dose(value) == expected


def test_strip_code_fence_without_closing_fence():
    assert strip_code_fence('```json\n{"a": 1}') == '{"a": 1}'
