"""CLI commands for the insulin advisor."""

import asyncio
import uuid
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from insulin_advisor.config import get_settings
from insulin_advisor.models.recommendation import Recommendation, RecommendationResult
from insulin_advisor.models.stream import (
    PROGRESS_STEP_LABELS,
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    StreamEvent,
)

app = typer.Typer(
    name="insulin-advisor",
    help="AI-assisted insulin dose recommendations",
    add_completion=False,
)
console = Console()


async def _run_recommendation(payload: dict, user_id: uuid.UUID, sink) -> None:
    from insulin_advisor.core.database import create_engine_from_url, create_session_factory
    from insulin_advisor.recommendation import ProgressStream, create_pipeline

    settings = get_settings()
    engine = create_engine_from_url(settings.database_url)
    try:
        pipeline = create_pipeline(create_session_factory(engine), settings=settings)
        await pipeline.run(payload, user_id, ProgressStream(sink))
    finally:
        await engine.dispose()


async def _load_recommendations(patient_id: uuid.UUID, limit: int) -> list[Recommendation]:
    from insulin_advisor.core.database import create_engine_from_url, create_session_factory
    from insulin_advisor.core.store import SqlHistoryStore

    engine = create_engine_from_url(get_settings().database_url)
    try:
        store = SqlHistoryStore(create_session_factory(engine))
        return await store.list_recommendations(patient_id, limit=limit)
    finally:
        await engine.dispose()


def display_result(result: RecommendationResult) -> None:
    """Render a finished recommendation."""
    dose = f"{result.dose_units:g} IU" if result.dose_units is not None else "n/a"
    confidence = result.confidence.value if result.confidence else "n/a"
    console.print(
        Panel(
            f"[bold]Dose:[/bold] {dose}\n"
            f"[bold]Medication:[/bold] {result.medication_name or 'n/a'}\n"
            f"[bold]Confidence:[/bold] {confidence}",
            title="Recommendation",
        )
    )

    table = Table(show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Reasoning", result.reasoning or "")
    table.add_row("Safety notes", result.safety_notes or "")
    table.add_row("Monitoring", result.recommended_monitoring or "")
    console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command()
def recommend(
    patient_id: str = typer.Argument(..., help="Patient ID"),
    user_id: str = typer.Option(..., "--user", "-u", help="Owning user ID"),
    target_time: Optional[datetime] = typer.Option(
        None, "--target-time", "-t", help="Time the dose is for (ISO 8601, default now)"
    ),
    timezone: Optional[str] = typer.Option(
        None, "--timezone", "-z", help="IANA timezone for local times, e.g. America/New_York"
    ),
    output_json: bool = typer.Option(False, "--json", help="Print raw events as JSON lines"),
):
    """Request a dose recommendation and show its progress."""
    try:
        caller = uuid.UUID(user_id)
    except ValueError:
        console.print(f"[red]Invalid user ID: {user_id}[/red]")
        raise typer.Exit(1)

    payload = {"patientId": patient_id}
    if target_time is not None:
        payload["targetTime"] = target_time.isoformat()
    if timezone:
        payload["timezone"] = timezone

    outcome: dict[str, StreamEvent] = {}

    async def sink(event: StreamEvent) -> None:
        if event.is_terminal:
            outcome["event"] = event
        if output_json:
            console.print_json(event.to_json())
        elif isinstance(event, ProgressEvent):
            console.print(f"[dim]{PROGRESS_STEP_LABELS[event.step]}:[/dim] {event.message or ''}")

    asyncio.run(_run_recommendation(payload, caller, sink))

    final = outcome.get("event")
    if isinstance(final, ErrorEvent):
        if not output_json:
            console.print(f"[red]Error: {final.error}[/red]")
        raise typer.Exit(1)
    if isinstance(final, ResultEvent) and not output_json:
        display_result(final.data)


@app.command()
def history(
    patient_id: str = typer.Argument(..., help="Patient ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recommendations to show"),
):
    """List past recommendations for a patient, newest first."""
    try:
        pid = uuid.UUID(patient_id)
    except ValueError:
        console.print(f"[red]Invalid patient ID: {patient_id}[/red]")
        raise typer.Exit(1)

    recommendations = asyncio.run(_load_recommendations(pid, limit))
    if not recommendations:
        console.print("No recommendations recorded")
        return

    table = Table(title="Recommendations")
    table.add_column("Created")
    table.add_column("Target time")
    table.add_column("Dose")
    table.add_column("Medication")
    table.add_column("Confidence")
    for rec in recommendations:
        table.add_row(
            rec.created_at.strftime("%Y-%m-%d %H:%M"),
            rec.target_time.strftime("%Y-%m-%d %H:%M"),
            f"{rec.dose_units:g} IU" if rec.dose_units is not None else "n/a",
            rec.medication_name or "n/a",
            rec.confidence.value if rec.confidence else "n/a",
        )
    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting insulin advisor API server on {host}:{port}")
    uvicorn.run(
        "insulin_advisor.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def init_db():
    """Create the database tables."""
    from insulin_advisor.core.database import create_engine_from_url, init_db as create_tables

    settings = get_settings()

    async def _init() -> None:
        engine = create_engine_from_url(settings.database_url)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_init())
    console.print("[green]Database initialized[/green]")


@app.command()
def health():
    """Check model provider health."""
    from insulin_advisor.llm import create_llm_from_settings

    settings = get_settings()

    console.print("[bold]Insulin Advisor Health Check[/bold]\n")

    llm = create_llm_from_settings()
    ok = asyncio.run(llm.health_check())

    table = Table(title="LLM Status")
    table.add_column("Model")
    table.add_column("Status")
    table.add_row(settings.llm_model, "[green]OK[/green]" if ok else "[red]UNAVAILABLE[/red]")
    console.print(table)

    if not settings.has_openai_key:
        console.print("[yellow]No model API key configured[/yellow]")


@app.command()
def stats():
    """Show recent pipeline and model call statistics."""
    from insulin_advisor.observability import get_observability_logger

    obs = get_observability_logger()
    table = Table(title="Observability")
    table.add_column("Log")
    table.add_column("Total")
    table.add_column("Errors")
    for log_type in ("pipeline", "llm"):
        summary = obs.get_stats(log_type)
        table.add_row(log_type, str(summary.get("total", 0)), str(summary.get("errors", 0)))
    console.print(table)


@app.command()
def version():
    """Show version information."""
    from insulin_advisor import __version__

    console.print(f"Insulin Advisor v{__version__}")


if __name__ == "__main__":
    app()
