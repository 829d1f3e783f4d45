"""FastAPI dependencies for caller identity and app-scoped services."""

from __future__ import annotations

import uuid

from fastapi import HTTPException, Request

from insulin_advisor.recommendation import RecommendationPipeline

USER_ID_HEADER = "X-User-Id"


async def get_caller_id(request: Request) -> uuid.UUID:
    """Resolve the authenticated caller.

    Session handling happens upstream; the authenticated user id arrives in
    the ``X-User-Id`` header. Ownership of the requested patient is
    re-checked by the pipeline.
    """
    raw = request.headers.get(USER_ID_HEADER)
    if not raw:
        raise HTTPException(status_code=401, detail="User ID not found")
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {USER_ID_HEADER}")


def get_pipeline(request: Request) -> RecommendationPipeline:
    return request.app.state.pipeline
