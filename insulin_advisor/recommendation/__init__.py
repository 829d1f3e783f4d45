"""Insulin dose recommendation pipeline."""

from insulin_advisor.recommendation.gateway import GatewayReply, ModelGateway, fallback_recommendation
from insulin_advisor.recommendation.history import HistoryWindow, check_sufficient_history, select_history_window
from insulin_advisor.recommendation.parser import normalize_confidence, parse_model_response
from insulin_advisor.recommendation.patterns import NO_PATTERN_DATA, analyze_medication_patterns
from insulin_advisor.recommendation.pipeline import RecommendationPipeline
from insulin_advisor.recommendation.prompt_builder import RecommendationPromptBuilder, normalize_medications
from insulin_advisor.recommendation.safety import assess_recommendation, check_dose_difference
from insulin_advisor.recommendation.stream import ProgressStream, StreamClosedError, StreamStateError

__all__ = [
    "GatewayReply",
    "ModelGateway",
    "fallback_recommendation",
    "HistoryWindow",
    "check_sufficient_history",
    "select_history_window",
    "normalize_confidence",
    "parse_model_response",
    "NO_PATTERN_DATA",
    "analyze_medication_patterns",
    "RecommendationPipeline",
    "RecommendationPromptBuilder",
    "normalize_medications",
    "assess_recommendation",
    "check_dose_difference",
    "ProgressStream",
    "StreamClosedError",
    "StreamStateError",
    "create_pipeline",
]


def create_pipeline(session_factory, llm=None, settings=None) -> RecommendationPipeline:
    """Wire a pipeline from settings, a session factory and an optional model client."""
    from insulin_advisor.config import get_settings
    from insulin_advisor.core.store import SqlHistoryStore
    from insulin_advisor.llm import create_llm_from_settings

    settings = settings or get_settings()
    gateway = ModelGateway(
        llm or create_llm_from_settings(),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        fallback_dose_units=settings.fallback_dose_units,
    )
    return RecommendationPipeline(
        store=SqlHistoryStore(session_factory),
        gateway=gateway,
        settings=settings,
    )
