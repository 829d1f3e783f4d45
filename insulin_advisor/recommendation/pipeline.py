"""Recommendation request pipeline.

One request runs sequentially: validate and load history, build the prompt,
call the model, parse and persist the answer, run the advisory safety check
and finish with a single terminal event on the progress stream.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from insulin_advisor.config import Settings, get_settings
from insulin_advisor.core.store import HistoryStore
from insulin_advisor.models.recommendation import (
    AIRecommendation,
    Recommendation,
    RecommendationCreate,
    RecommendationResult,
)
from insulin_advisor.models.stream import PipelineStep, RecommendRequest
from insulin_advisor.observability import get_observability_logger
from insulin_advisor.recommendation.gateway import ModelGateway
from insulin_advisor.recommendation.history import select_history_window
from insulin_advisor.recommendation.patterns import analyze_medication_patterns
from insulin_advisor.recommendation.prompt_builder import RecommendationPromptBuilder
from insulin_advisor.recommendation.safety import assess_recommendation
from insulin_advisor.recommendation.stream import ProgressStream
from insulin_advisor.shared.localtime import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


class RecommendationPipeline:
    """Runs recommendation requests against an explicitly supplied store and gateway."""

    def __init__(
        self,
        store: HistoryStore,
        gateway: ModelGateway,
        prompt_builder: Optional[RecommendationPromptBuilder] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.prompt_builder = prompt_builder or RecommendationPromptBuilder(
            self.settings.glucose_target_ranges
        )
        self.clock = clock

    async def run(
        self,
        payload: Any,
        caller_id: Union[uuid.UUID, str],
        stream: ProgressStream,
    ) -> Optional[Recommendation]:
        """Process one request, reporting every stage on ``stream``.

        Args:
            payload: Raw request body (dict) or a RecommendRequest
            caller_id: Authenticated user making the request
            stream: Progress stream for this connection

        Returns:
            The persisted recommendation, or None if the run ended in error
        """
        obs = get_observability_logger()
        request_id = obs.generate_request_id()

        with obs.pipeline_run(request_id=request_id) as event:
            try:
                recommendation = await self._run(payload, str(caller_id), stream, event, request_id)
            except Exception as e:
                logger.exception(f"Recommendation pipeline failed: {e}")
                event.error_message = f"{type(e).__name__}: {e}"
                if not stream.closed:
                    await stream.fail("Internal server error")
                recommendation = None
            event.last_step = stream.state.value
            return recommendation

    async def _run(
        self,
        payload: Any,
        caller_id: str,
        stream: ProgressStream,
        event,
        request_id: str,
    ) -> Optional[Recommendation]:
        await stream.progress(PipelineStep.GATHERING_DATA, "Validating request...")
        try:
            request = (
                payload if isinstance(payload, RecommendRequest)
                else RecommendRequest.model_validate(payload)
            )
        except ValidationError as e:
            logger.error(f"Validation error in recommendation request: {e}")
            return await self._abort(stream, event, "Validation failed")

        now = self.clock()
        tz_name = request.timezone or DEFAULT_TIMEZONE
        target_time = request.target_time or now
        event.patient_id = str(request.patient_id)
        event.timezone = tz_name

        await stream.progress(PipelineStep.GATHERING_DATA, "Loading patient data...")
        patient = await self.store.find_patient(request.patient_id)
        if patient is None or str(patient.owner_id) != caller_id:
            if patient is not None:
                logger.warning(f"User {caller_id} requested patient {request.patient_id} they do not own")
            return await self._abort(stream, event, "Patient not found")

        await stream.progress(PipelineStep.GATHERING_DATA, "Loading recent entries...")
        entries = await self.store.find_entries_by_patient(request.patient_id)
        window = select_history_window(
            entries,
            now,
            window_hours=self.settings.history_window_hours,
            recent_hours=self.settings.recent_window_hours,
            min_entries=self.settings.min_history_entries,
        )
        event.entries_in_window = len(window.recent_entries)
        for warning in window.warnings:
            logger.warning(f"Patient {patient.id}: {warning}")
        await stream.progress(
            PipelineStep.GATHERING_DATA, f"Found {len(window.recent_entries)} recent entries"
        )

        if not window.has_sufficient_history:
            return await self._abort(stream, event, window.message)

        await stream.progress(PipelineStep.BUILDING_PROMPT, "Building AI prompt...")
        pattern_analysis = analyze_medication_patterns(window.insulin_entries, tz_name)
        prompt = self.prompt_builder.build(
            patient,
            window,
            target_time,
            tz_name,
            pattern_analysis=pattern_analysis,
        )
        await stream.progress(PipelineStep.BUILDING_PROMPT, "Prompt built successfully")

        await stream.progress(PipelineStep.WAITING_FOR_MODEL, "Calling AI model...")
        reply = await self.gateway.invoke(prompt, request_id=request_id)
        event.used_fallback = reply.used_fallback
        await stream.progress(PipelineStep.WAITING_FOR_MODEL, "AI response received")

        await stream.progress(PipelineStep.PARSING_RESPONSE, "Processing recommendation...")
        parsed = self.gateway.parse(reply)
        saved = await self.store.save_recommendation(
            self._to_create(request, prompt, reply.content, parsed, target_time)
        )
        if saved is None:
            return await self._abort(stream, event, "Failed to save recommendation")

        logger.info(f"Recommendation {saved.id} saved for patient {saved.patient_id}")
        await stream.progress(PipelineStep.PARSING_RESPONSE, "Recommendation saved")

        assessment = assess_recommendation(
            saved.dose_units,
            saved.medication_name,
            window.recent_entries,
            threshold=self.settings.dose_difference_warning_threshold,
            max_safe_dose=self.settings.max_safe_dose_units,
        )
        result = RecommendationResult(**saved.model_dump(), warnings=assessment.warnings)

        event.recommendation_id = str(saved.id)
        event.dose_units = saved.dose_units
        event.confidence = saved.confidence.value if saved.confidence else None
        event.warnings_count = len(assessment.warnings)

        await stream.complete(result)
        return saved

    @staticmethod
    def _to_create(
        request: RecommendRequest,
        prompt: str,
        raw_content: Optional[str],
        parsed: AIRecommendation,
        target_time: datetime,
    ) -> RecommendationCreate:
        # Keep the model's raw text for audit; on fallback there is none
        response = raw_content or parsed.reasoning or "No reasoning provided"
        return RecommendationCreate(
            patient_id=request.patient_id,
            prompt=prompt,
            response=response,
            target_time=target_time,
            **parsed.model_dump(),
        )

    @staticmethod
    async def _abort(stream: ProgressStream, event, message: str) -> None:
        event.error_message = message
        await stream.fail(message)
        return None
