"""Tests for the progress stream state machine."""

import json
import uuid

import pytest

from conftest import NOW, PATIENT_ID

from insulin_advisor.models import PipelineStep, RecommendationResult
from insulin_advisor.recommendation.stream import ProgressStream, StreamClosedError, StreamStateError


@pytest.fixture
def events():
    return []


@pytest.fixture
def stream(events):
    async def sink(event):
        events.append(event)

    return ProgressStream(sink)


@pytest.fixture
def result():
    return RecommendationResult(
        id=uuid.uuid4(),
        patient_id=PATIENT_ID,
        prompt="prompt",
        response="response",
        dose_units=9,
        medication_name="Actrapid",
        target_time=NOW,
        created_at=NOW,
    )


async def advance_to_parsing(stream):
    await stream.progress(PipelineStep.GATHERING_DATA)
    await stream.progress(PipelineStep.BUILDING_PROMPT)
    await stream.progress(PipelineStep.WAITING_FOR_MODEL)
    await stream.progress(PipelineStep.PARSING_RESPONSE)


class TestProgress:
    async def test_stages_in_order(self, stream, events):
        await advance_to_parsing(stream)

        assert [e.step for e in events] == [
            PipelineStep.GATHERING_DATA,
            PipelineStep.BUILDING_PROMPT,
            PipelineStep.WAITING_FOR_MODEL,
            PipelineStep.PARSING_RESPONSE,
        ]
        assert stream.state == PipelineStep.PARSING_RESPONSE

    async def test_same_stage_repeats(self, stream, events):
        await stream.progress(PipelineStep.GATHERING_DATA, "Validating request...")
        await stream.progress(PipelineStep.GATHERING_DATA, "Loading patient data...")

        assert [e.message for e in events] == ["Validating request...", "Loading patient data..."]

    async def test_skipping_a_stage_fails(self, stream):
        await stream.progress(PipelineStep.GATHERING_DATA)

        with pytest.raises(StreamStateError):
            await stream.progress(PipelineStep.WAITING_FOR_MODEL)

    async def test_first_stage_must_be_gathering(self, stream):
        with pytest.raises(StreamStateError):
            await stream.progress(PipelineStep.BUILDING_PROMPT)

    async def test_moving_backwards_fails(self, stream):
        await stream.progress(PipelineStep.GATHERING_DATA)
        await stream.progress(PipelineStep.BUILDING_PROMPT)

        with pytest.raises(StreamStateError):
            await stream.progress(PipelineStep.GATHERING_DATA)

    async def test_terminal_steps_are_not_progress(self, stream):
        with pytest.raises(StreamStateError):
            await stream.progress(PipelineStep.COMPLETE)


class TestTerminalEvents:
    async def test_error_from_any_stage(self, stream, events):
        await stream.progress(PipelineStep.GATHERING_DATA)
        await stream.fail("Patient not found")

        assert stream.closed
        assert stream.state == PipelineStep.ERROR
        assert json.loads(events[-1].to_json()) == {"type": "error", "error": "Patient not found"}

    async def test_error_before_any_progress(self, stream, events):
        await stream.fail("Validation failed")

        assert len(events) == 1
        assert events[0].is_terminal

    async def test_complete_requires_parsing_stage(self, stream, result):
        await stream.progress(PipelineStep.GATHERING_DATA)

        with pytest.raises(StreamStateError):
            await stream.complete(result)

    async def test_complete(self, stream, events, result):
        await advance_to_parsing(stream)
        await stream.complete(result)

        assert stream.state == PipelineStep.COMPLETE
        payload = json.loads(events[-1].to_json())
        assert payload["type"] == "result"
        assert payload["data"]["doseUnits"] == 9
        assert payload["data"]["safetyNotes"] is None
        assert payload["data"]["warnings"] == []

    async def test_nothing_after_terminal(self, stream, result):
        await stream.fail("boom")

        with pytest.raises(StreamClosedError):
            await stream.progress(PipelineStep.GATHERING_DATA)
        with pytest.raises(StreamClosedError):
            await stream.fail("again")
        with pytest.raises(StreamClosedError):
            await stream.complete(result)


class TestDisconnect:
    async def test_events_dropped_after_disconnect(self, stream, events):
        await stream.progress(PipelineStep.GATHERING_DATA)
        stream.disconnect()

        await stream.progress(PipelineStep.BUILDING_PROMPT)
        await stream.fail("late error")

        assert len(events) == 1
        assert stream.disconnected
        # State still advances so the run finishes normally
        assert stream.state == PipelineStep.ERROR


async def test_sse_frame_format(stream, events):
    await stream.progress(PipelineStep.GATHERING_DATA, "Validating request...")

    frame = events[0].to_sse()

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {
        "type": "progress",
        "step": "gathering-data",
        "message": "Validating request...",
    }
