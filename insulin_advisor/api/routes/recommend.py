"""Streamed dose recommendation endpoint (server-sent events)."""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from insulin_advisor.api.dependencies import get_caller_id, get_pipeline
from insulin_advisor.models.stream import StreamEvent
from insulin_advisor.recommendation import ProgressStream, RecommendationPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommend"])


class PipelineTaskRegistry:
    """Keeps running pipeline tasks referenced until they finish.

    A client that drops the connection does not cancel its run: the
    recommendation is still persisted, only the remaining events are lost.
    """

    def __init__(self):
        self.active_tasks: dict[str, asyncio.Task] = {}

    def start(self, request_key: str, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self.active_tasks[request_key] = task
        task.add_done_callback(lambda _: self._finished(request_key))
        logger.info(f"Pipeline task started: {request_key}")
        return task

    def _finished(self, request_key: str) -> None:
        if self.active_tasks.pop(request_key, None) is not None:
            logger.info(f"Pipeline task finished: {request_key}")

    @property
    def count(self) -> int:
        return len(self.active_tasks)

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for in-flight runs, cancelling any still going after ``timeout``."""
        tasks = list(self.active_tasks.values())
        if not tasks:
            return
        logger.info(f"Waiting for {len(tasks)} pipeline task(s)")
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


async def _read_payload(request: Request) -> Optional[Any]:
    """Return the decoded JSON body, or None if it is not valid JSON.

    None fails request validation inside the pipeline, so malformed bodies
    get the same streamed "Validation failed" error as schema violations.
    """
    body = await request.body()
    try:
        return json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Recommendation request body is not valid JSON")
        return None


@router.post("/recommend")
async def recommend(
    request: Request,
    caller_id: uuid.UUID = Depends(get_caller_id),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """Stream a dose recommendation for one of the caller's patients.

    Protocol (one ``data: <json>`` frame per event):
       - {type: "progress", step: "gathering-data", message: "..."}
       - {type: "progress", step: "building-prompt", message: "..."}
       - {type: "progress", step: "waiting-for-model", message: "..."}
       - {type: "progress", step: "parsing-response", message: "..."}
       - {type: "result", data: {...}} or {type: "error", error: "..."}
    """
    payload = await _read_payload(request)
    queue: asyncio.Queue[Optional[StreamEvent]] = asyncio.Queue()

    async def sink(event: StreamEvent) -> None:
        await queue.put(event)

    stream = ProgressStream(sink)
    registry: PipelineTaskRegistry = request.app.state.task_registry
    task = registry.start(str(uuid.uuid4()), pipeline.run(payload, caller_id, stream))
    # Unblocks the reader if the run ends without a terminal event
    task.add_done_callback(lambda _: queue.put_nowait(None))

    async def event_source() -> AsyncIterator[str]:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event.to_sse()
                if event.is_terminal:
                    break
        finally:
            if not stream.closed:
                stream.disconnect()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
