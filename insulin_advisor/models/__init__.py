"""Data models for Insulin Advisor."""

from insulin_advisor.models.patient import ActivityLevel, DiabetesType, Medication, Patient
from insulin_advisor.models.entry import (
    Entry,
    EntryAdapter,
    GlucoseEntry,
    InsulinEntry,
    MealEntry,
)
from insulin_advisor.models.recommendation import (
    AIRecommendation,
    Confidence,
    Recommendation,
    RecommendationCreate,
    RecommendationResult,
)
from insulin_advisor.models.stream import (
    PROGRESS_STEPS,
    ErrorEvent,
    PipelineStep,
    ProgressEvent,
    RecommendRequest,
    ResultEvent,
    StreamEvent,
)

__all__ = [
    "ActivityLevel",
    "DiabetesType",
    "Medication",
    "Patient",
    "Entry",
    "EntryAdapter",
    "GlucoseEntry",
    "InsulinEntry",
    "MealEntry",
    "AIRecommendation",
    "Confidence",
    "Recommendation",
    "RecommendationCreate",
    "RecommendationResult",
    "PROGRESS_STEPS",
    "ErrorEvent",
    "PipelineStep",
    "ProgressEvent",
    "RecommendRequest",
    "ResultEvent",
    "StreamEvent",
]
