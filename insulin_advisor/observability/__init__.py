"""Observability module for model call and pipeline telemetry."""

from insulin_advisor.observability.events import (
    EventType,
    LLMCallEvent,
    ObservabilityEvent,
    PipelineEvent,
)
from insulin_advisor.observability.logger import ObservabilityLogger, get_observability_logger

__all__ = [
    "EventType",
    "LLMCallEvent",
    "ObservabilityEvent",
    "ObservabilityLogger",
    "PipelineEvent",
    "get_observability_logger",
]
