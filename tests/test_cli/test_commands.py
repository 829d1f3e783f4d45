"""Tests for CLI commands."""

import json
import uuid

import pytest
from unittest.mock import AsyncMock, patch
from typer.testing import CliRunner

from conftest import NOW, OWNER_ID, PATIENT_ID

from insulin_advisor.cli.commands import app
from insulin_advisor.models import (
    Confidence,
    ErrorEvent,
    PipelineStep,
    ProgressEvent,
    Recommendation,
    RecommendationResult,
    ResultEvent,
)

runner = CliRunner()


@pytest.fixture
def result_event():
    return ResultEvent(
        data=RecommendationResult(
            id=uuid.uuid4(),
            patient_id=PATIENT_ID,
            prompt="prompt",
            response="response",
            dose_units=9,
            medication_name="Actrapid",
            reasoning="Glucose slightly above target.",
            confidence=Confidence.MEDIUM,
            target_time=NOW,
            created_at=NOW,
            warnings=["Dose differs by 25.0% from last dose."],
        )
    )


def fake_run(*events):
    """Stand-in for the pipeline run that replays events into the sink."""

    async def run(payload, user_id, sink):
        run.calls.append((payload, user_id))
        for event in events:
            await sink(event)

    run.calls = []
    return run


class TestVersionCommand:
    def test_version_command(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.stdout


class TestRecommendCommand:
    def test_renders_result(self, result_event):
        run = fake_run(ProgressEvent(step=PipelineStep.GATHERING_DATA, message="Loading patient data..."), result_event)

        with patch("insulin_advisor.cli.commands._run_recommendation", run):
            result = runner.invoke(app, [
                "recommend", str(PATIENT_ID),
                "--user", str(OWNER_ID),
                "--timezone", "America/New_York",
            ])

        assert result.exit_code == 0
        assert "Loading patient data..." in result.stdout
        assert "9 IU" in result.stdout
        assert "Actrapid" in result.stdout
        assert "differs by 25.0%" in result.stdout
        payload, user_id = run.calls[0]
        assert payload == {"patientId": str(PATIENT_ID), "timezone": "America/New_York"}
        assert user_id == OWNER_ID

    def test_target_time_is_forwarded(self, result_event):
        run = fake_run(result_event)

        with patch("insulin_advisor.cli.commands._run_recommendation", run):
            runner.invoke(app, [
                "recommend", str(PATIENT_ID),
                "--user", str(OWNER_ID),
                "--target-time", "2026-06-16T08:00:00",
            ])

        assert run.calls[0][0]["targetTime"] == "2026-06-16T08:00:00"

    def test_error_exits_non_zero(self):
        run = fake_run(ErrorEvent(error="Patient not found"))

        with patch("insulin_advisor.cli.commands._run_recommendation", run):
            result = runner.invoke(app, ["recommend", str(PATIENT_ID), "--user", str(OWNER_ID)])

        assert result.exit_code == 1
        assert "Patient not found" in result.stdout

    def test_json_output(self, result_event):
        run = fake_run(result_event)

        with patch("insulin_advisor.cli.commands._run_recommendation", run):
            result = runner.invoke(app, ["recommend", str(PATIENT_ID), "--user", str(OWNER_ID), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["doseUnits"] == 9

    def test_invalid_user_id(self):
        result = runner.invoke(app, ["recommend", str(PATIENT_ID), "--user", "nobody"])

        assert result.exit_code == 1
        assert "Invalid user ID" in result.stdout


class TestHistoryCommand:
    def test_lists_recommendations(self):
        rec = Recommendation(
            id=uuid.uuid4(),
            patient_id=PATIENT_ID,
            prompt="prompt",
            response="response",
            dose_units=9,
            medication_name="Actrapid",
            confidence=Confidence.MEDIUM,
            target_time=NOW,
            created_at=NOW,
        )
        load = AsyncMock(return_value=[rec])

        with patch("insulin_advisor.cli.commands._load_recommendations", load):
            result = runner.invoke(app, ["history", str(PATIENT_ID), "--limit", "5"])

        assert result.exit_code == 0
        assert "Actrapid" in result.stdout
        assert "9 IU" in result.stdout
        load.assert_awaited_once_with(PATIENT_ID, 5)

    def test_empty_history(self):
        with patch("insulin_advisor.cli.commands._load_recommendations", AsyncMock(return_value=[])):
            result = runner.invoke(app, ["history", str(PATIENT_ID)])

        assert result.exit_code == 0
        assert "No recommendations recorded" in result.stdout

    def test_invalid_patient_id(self):
        result = runner.invoke(app, ["history", "nobody"])

        assert result.exit_code == 1
        assert "Invalid patient ID" in result.stdout


class TestHealthCommand:
    def test_health_command(self):
        llm = AsyncMock()
        llm.health_check = AsyncMock(return_value=True)

        with patch("insulin_advisor.llm.create_llm_from_settings", return_value=llm):
            result = runner.invoke(app, ["health"])

        assert result.exit_code == 0
        assert "OK" in result.stdout
