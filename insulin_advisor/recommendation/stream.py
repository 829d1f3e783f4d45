"""Progress stream for a single recommendation request.

Stages only move forward: ``gathering-data -> building-prompt ->
waiting-for-model -> parsing-response``, followed by exactly one terminal
``result`` or ``error`` event. The same stage may be announced several
times with different messages.
"""

import logging
from typing import Awaitable, Callable, Optional

from insulin_advisor.models.recommendation import RecommendationResult
from insulin_advisor.models.stream import (
    PROGRESS_STEPS,
    ErrorEvent,
    PipelineStep,
    ProgressEvent,
    ResultEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[StreamEvent], Awaitable[None]]


class StreamError(Exception):
    """Base exception for progress stream misuse."""

    pass


class StreamStateError(StreamError):
    """A stage transition skipped a stage or went backwards."""

    pass


class StreamClosedError(StreamError):
    """A write was attempted after the terminal event."""

    pass


class ProgressStream:
    """Emits pipeline events to a sink and enforces the stage order."""

    def __init__(self, sink: EventSink):
        self._sink = sink
        self._state = PipelineStep.IDLE
        self._closed = False
        self._disconnected = False

    @property
    def state(self) -> PipelineStep:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    def disconnect(self) -> None:
        """Mark the client as gone. Later events are dropped, not sent."""
        if not self._disconnected:
            logger.info(f"Client disconnected during {self._state.value}")
        self._disconnected = True

    async def progress(self, step: PipelineStep, message: Optional[str] = None) -> None:
        """Announce a pipeline stage.

        Raises:
            StreamClosedError: If a terminal event was already sent
            StreamStateError: If ``step`` skips a stage or moves backwards
        """
        self._ensure_open()
        if step not in PROGRESS_STEPS:
            raise StreamStateError(f"{step.value} is not a progress stage")

        if step != self._state:
            expected = self._next_step()
            if step != expected:
                raise StreamStateError(
                    f"Cannot move from {self._state.value} to {step.value}"
                    + (f" (expected {expected.value})" if expected else "")
                )
            self._state = step

        await self._emit(ProgressEvent(step=step, message=message))

    async def fail(self, error: str) -> None:
        """Send the terminal error event. Valid from any stage."""
        self._ensure_open()
        self._state = PipelineStep.ERROR
        self._closed = True
        await self._emit(ErrorEvent(error=error))

    async def complete(self, result: RecommendationResult) -> None:
        """Send the terminal result event.

        Raises:
            StreamStateError: If the response was never parsed
        """
        self._ensure_open()
        if self._state != PipelineStep.PARSING_RESPONSE:
            raise StreamStateError(f"Cannot complete from {self._state.value}")
        self._state = PipelineStep.COMPLETE
        self._closed = True
        await self._emit(ResultEvent(data=result))

    def _next_step(self) -> Optional[PipelineStep]:
        if self._state == PipelineStep.IDLE:
            return PROGRESS_STEPS[0]
        if self._state in PROGRESS_STEPS:
            index = PROGRESS_STEPS.index(self._state)
            if index + 1 < len(PROGRESS_STEPS):
                return PROGRESS_STEPS[index + 1]
        return None

    def _ensure_open(self) -> None:
        if self._closed:
            raise StreamClosedError(f"Stream already closed ({self._state.value})")

    async def _emit(self, event: StreamEvent) -> None:
        if self._disconnected:
            logger.debug(f"Dropping {event.type} event for disconnected client")
            return
        await self._sink(event)
