"""Parsing of model answers into typed recommendations."""

import json
import logging
import math
import re
from typing import Any, Optional

from insulin_advisor.models.recommendation import AIRecommendation, Confidence

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_DOSE = 8.0

_DOSE_PATTERN = re.compile(r'"doseUnits"\s*:\s*(\d+(?:\.\d+)?)')


def strip_code_fence(content: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    text = content.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[-1].strip() == "```":
            text = "\n".join(lines[1:-1])
        else:
            text = "\n".join(lines[1:])
    return text


def normalize_confidence(value: Any) -> Optional[Confidence]:
    """Map "HIGH", "Medium", "low" etc. to Confidence; anything else to None."""
    if isinstance(value, Confidence):
        return value
    if isinstance(value, str):
        try:
            return Confidence(value.strip().lower())
        except ValueError:
            return None
    return None


def coerce_dose(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            dose = float(value.strip())
        except ValueError:
            return None
        return dose if math.isfinite(dose) else None
    return None


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_model_response(raw: str, fallback_dose: float = DEFAULT_FALLBACK_DOSE) -> AIRecommendation:
    """Parse the model's JSON answer.

    Well-formed JSON objects are coerced field by field; anything else falls
    back to a regex dose extraction with low confidence and the raw text
    kept as reasoning for human review.

    Args:
        raw: Raw model output, expected to be a JSON object
        fallback_dose: Dose used when no dose can be extracted

    Returns:
        AIRecommendation; never raises
    """
    try:
        parsed = json.loads(strip_code_fence(raw))
        if not isinstance(parsed, dict):
            raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    except ValueError as e:
        # json.JSONDecodeError is a ValueError
        logger.error(f"Error parsing JSON from model response: {e}")
        logger.debug(f"Response content: {raw}")
        return _unstructured_fallback(raw, fallback_dose)

    return AIRecommendation(
        dose_units=coerce_dose(parsed.get("doseUnits")),
        medication_name=_optional_str(parsed.get("medicationName")),
        reasoning=_optional_str(parsed.get("reasoning")),
        safety_notes=_optional_str(parsed.get("safetyNotes")),
        confidence=normalize_confidence(parsed.get("confidence")),
        recommended_monitoring=_optional_str(parsed.get("recommendedMonitoring")),
    )


def _unstructured_fallback(raw: str, fallback_dose: float) -> AIRecommendation:
    match = _DOSE_PATTERN.search(raw or "")
    dose = float(match.group(1)) if match else fallback_dose
    return AIRecommendation(
        dose_units=dose,
        medication_name="Unknown",
        reasoning=raw,
        safety_notes="Unable to parse structured response",
        confidence=Confidence.LOW,
        recommended_monitoring="Please consult healthcare provider",
    )
