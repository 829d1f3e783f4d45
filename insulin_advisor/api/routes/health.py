"""Health check endpoints."""

from fastapi import APIRouter, Request

from insulin_advisor import __version__
from insulin_advisor.core.database import ping

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "insulin-advisor",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check - verifies the database and model provider are reachable."""
    errors = []
    llm_ok = False

    try:
        await ping(request.app.state.engine)
    except Exception as e:
        errors.append(f"Database check failed: {e}")

    try:
        llm_ok = await request.app.state.llm.health_check()
        if not llm_ok:
            errors.append("Model provider unavailable")
    except Exception as e:
        errors.append(f"LLM check failed: {e}")

    if errors:
        return {
            "status": "not_ready",
            "errors": errors,
        }

    return {
        "status": "ready",
        "llm": {request.app.state.llm.model_name: llm_ok},
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
