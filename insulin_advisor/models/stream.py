"""Recommendation request and streamed progress event schemas."""

import json
import uuid
from datetime import datetime
from datetime import timezone as dt_timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, field_validator

from insulin_advisor.models.recommendation import CamelModel, RecommendationResult
from insulin_advisor.shared.localtime import resolve_timezone


class PipelineStep(str, Enum):
    """Stages of a recommendation request, in order."""

    IDLE = "idle"  # Client-side only, never emitted
    GATHERING_DATA = "gathering-data"
    BUILDING_PROMPT = "building-prompt"
    WAITING_FOR_MODEL = "waiting-for-model"
    PARSING_RESPONSE = "parsing-response"
    COMPLETE = "complete"
    ERROR = "error"


# Stages the server announces with progress events
PROGRESS_STEPS: tuple[PipelineStep, ...] = (
    PipelineStep.GATHERING_DATA,
    PipelineStep.BUILDING_PROMPT,
    PipelineStep.WAITING_FOR_MODEL,
    PipelineStep.PARSING_RESPONSE,
)

PROGRESS_STEP_LABELS: dict[PipelineStep, str] = {
    PipelineStep.GATHERING_DATA: "Gathering patient data",
    PipelineStep.BUILDING_PROMPT: "Building AI prompt",
    PipelineStep.WAITING_FOR_MODEL: "Waiting for AI model",
    PipelineStep.PARSING_RESPONSE: "Processing AI recommendation",
}


class RecommendRequest(CamelModel):
    """Inbound request for a dose recommendation."""

    patient_id: uuid.UUID
    target_time: Optional[datetime] = None
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            resolve_timezone(value)
        return value

    @field_validator("target_time")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value


class _StreamEventBase(CamelModel):
    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_sse(self) -> str:
        """Render as a server-sent-events frame."""
        return f"data: {self.to_json()}\n\n"

    @property
    def is_terminal(self) -> bool:
        return False


class ProgressEvent(_StreamEventBase):
    type: Literal["progress"] = "progress"
    step: PipelineStep
    message: Optional[str] = None


class ErrorEvent(_StreamEventBase):
    type: Literal["error"] = "error"
    error: str

    @property
    def is_terminal(self) -> bool:
        return True


class ResultEvent(_StreamEventBase):
    type: Literal["result"] = "result"
    data: RecommendationResult

    def to_json(self) -> str:
        # Keep explicit nulls in the recommendation so clients see every field
        payload = {"type": self.type, "data": self.data.model_dump(mode="json", by_alias=True)}
        return json.dumps(payload)

    @property
    def is_terminal(self) -> bool:
        return True


StreamEvent = Annotated[
    Union[ProgressEvent, ErrorEvent, ResultEvent],
    Field(discriminator="type"),
]
