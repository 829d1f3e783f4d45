"""Structured observability events for model calls and pipeline runs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of observability events."""

    LLM_CALL_START = "llm_call_start"
    LLM_CALL_SUCCESS = "llm_call_success"
    LLM_CALL_ERROR = "llm_call_error"
    PIPELINE_START = "pipeline_start"
    PIPELINE_SUCCESS = "pipeline_success"
    PIPELINE_ERROR = "pipeline_error"


class ObservabilityEvent(BaseModel):
    """Base class for all observability events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class LLMCallEvent(ObservabilityEvent):
    """Event for model API calls."""

    provider: str
    model: str
    messages: list[dict[str, str]] = Field(default_factory=list)
    temperature: float = 0.2
    max_tokens: int = 1000

    # Response fields (populated on success)
    response_content: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    # Error fields (populated on error)
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class PipelineEvent(ObservabilityEvent):
    """Event for one recommendation pipeline run."""

    patient_id: Optional[str] = None
    timezone: Optional[str] = None
    last_step: Optional[str] = None
    entries_in_window: Optional[int] = None

    # Outcome
    recommendation_id: Optional[str] = None
    dose_units: Optional[float] = None
    confidence: Optional[str] = None
    used_fallback: bool = False
    warnings_count: int = 0
    error_message: Optional[str] = None
