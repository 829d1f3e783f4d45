"""FastAPI application for the insulin advisor."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from insulin_advisor import __version__
from insulin_advisor.api.middleware import APIKeyMiddleware, RequestLoggingMiddleware
from insulin_advisor.api.routes import health, recommend
from insulin_advisor.api.routes.recommend import PipelineTaskRegistry
from insulin_advisor.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting insulin advisor API")

    settings = get_settings()

    from insulin_advisor.core.database import create_engine_from_url, create_session_factory
    from insulin_advisor.llm import create_llm_from_settings
    from insulin_advisor.recommendation import create_pipeline

    engine = create_engine_from_url(settings.database_url)
    session_factory = create_session_factory(engine)
    llm = create_llm_from_settings()

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.llm = llm
    app.state.pipeline = create_pipeline(session_factory, llm=llm, settings=settings)
    app.state.task_registry = PipelineTaskRegistry()

    logger.info(f"Insulin advisor API started (model={llm.model_name})")

    yield

    logger.info("Shutting down insulin advisor API")
    await app.state.task_registry.drain()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Insulin Advisor API",
        description="Streamed AI-assisted insulin dose recommendations",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    if settings.api_key:
        app.add_middleware(APIKeyMiddleware, api_key=settings.api_key)

    app.include_router(health.router, tags=["health"])
    app.include_router(recommend.router, prefix="/api/v1")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )

    return app
