"""Recommendation models shared by the gateway, parser, store and stream."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Confidence(str, Enum):
    """Model-reported confidence in a recommendation."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CamelModel(BaseModel):
    """Base for payloads that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AIRecommendation(CamelModel):
    """Fields extracted from a model answer (or a conservative fallback)."""

    dose_units: Optional[float] = None
    medication_name: Optional[str] = None
    reasoning: Optional[str] = None
    safety_notes: Optional[str] = None
    confidence: Optional[Confidence] = None
    recommended_monitoring: Optional[str] = None


class RecommendationCreate(AIRecommendation):
    """Everything needed to persist a recommendation."""

    patient_id: uuid.UUID
    prompt: str
    response: str
    target_time: datetime


class Recommendation(RecommendationCreate):
    """A persisted, append-only recommendation."""

    id: uuid.UUID
    created_at: datetime


class RecommendationResult(Recommendation):
    """Recommendation plus advisory dose warnings, sent as the stream result."""

    warnings: list[str] = Field(default_factory=list)
