"""Typer-based CLI for generating, refreshing, and inspecting daily work summaries."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path

import typer

from worklog_digest.config import Settings, load_settings
from worklog_digest.enhancer import EnhancementOrchestrator
from worklog_digest.errors import ErrorKind, WorklogError
from worklog_digest.generator import GeminiSummaryProvider, LocalSummaryProvider, resolve_gemini_api_key
from worklog_digest.git_source import GitSourceProvider, repository_identifier
from worklog_digest.models import DailySummaryRecord
from worklog_digest.pipeline import PipelineOrchestrator, validate_request
from worklog_digest.renderer import render_report, render_text
from worklog_digest.store import Store
from worklog_digest.usage import UsageRecorder

app = typer.Typer(add_completion=False, help="worklog-digest: daily work summaries from git history")

DEFAULT_OUTPUT_ROOT = Path("reports")
DATE_FORMATS = ["%Y-%m-%d"]


def _setup_logging(level: str) -> None:
    """Configure root logging once for the CLI process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


def _echo_step(step: int, total: int, message: str) -> None:
    """Print a normalized progress step line."""
    typer.echo(f"[{step}/{total}] {message}")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _resolve_since(settings: Settings, since: datetime | None) -> date:
    if since is not None:
        return since.date()
    return datetime.now(settings.tz).date() - timedelta(days=7)


def _fail(exc: WorklogError) -> None:
    """Translate a pipeline error into a CLI failure."""
    if exc.kind is ErrorKind.VALIDATION:
        raise typer.BadParameter(exc.message) from exc
    typer.echo(f"Error ({exc.kind.value}): {exc}", err=True)
    raise typer.Exit(code=1) from exc


def _build_pipeline(
    settings: Settings,
    store: Store,
    repo: Path,
    use_ai: bool,
    local_only: bool,
) -> PipelineOrchestrator:
    """Wire collaborators for one request; nothing here is shared between calls."""
    enhancer = None
    if use_ai and settings.ai_enabled:
        if local_only:
            provider = LocalSummaryProvider(tz=settings.tz, date_style=settings.date_style)
        elif not resolve_gemini_api_key():
            typer.echo("    no GEMINI_API_KEY found: using local summary writer")
            provider = LocalSummaryProvider(tz=settings.tz, date_style=settings.date_style)
        else:
            provider = GeminiSummaryProvider(tz=settings.tz, date_style=settings.date_style)

        enhancer = EnhancementOrchestrator(
            provider=provider,
            gateway=store,
            usage=UsageRecorder(store, settings.tz),
            config=settings.generation_config(),
            fallback_config=settings.fallback_generation_config(),
        )

    return PipelineOrchestrator(
        source=GitSourceProvider(max_lookback_days=settings.max_lookback_days, tz=settings.tz),
        gateway=store,
        enhancer=enhancer,
        location=str(repo),
        repository_id=repository_identifier(repo),
        tz=settings.tz,
        date_style=settings.date_style,
        max_lookback_days=settings.max_lookback_days,
        reuse_stored_summaries=settings.reuse_stored_summaries,
    )


def _echo_records(records: list[DailySummaryRecord]) -> None:
    if not records:
        typer.echo("No commits found in range.")
        return
    for record in records:
        marker = f"enhanced: {record.model_identifier}" if record.has_enhancement else "basic"
        typer.echo(f"[{marker}]")
        typer.echo(render_text(record))
        typer.echo("")


def _run(
    ctx: typer.Context,
    author: str,
    since: datetime | None,
    repo: Path | None,
    db_path: Path | None,
    refresh: bool,
    no_ai: bool,
    local_only: bool,
    output_root: Path | None,
) -> None:
    settings = _settings(ctx)
    start = _resolve_since(settings, since)
    repo_path = repo or settings.git_repository_path
    total_steps = 3 if output_root else 2

    try:
        validate_request(author, start, datetime.now(settings.tz).date(), settings.max_lookback_days)

        _echo_step(1, total_steps, "Initializing storage")
        store = Store(db_path or settings.database_path)
        store.init_db()

        _echo_step(2, total_steps, "Refreshing summaries" if refresh else "Generating summaries")
        pipeline = _build_pipeline(settings, store, repo_path, use_ai=not no_ai, local_only=local_only)
        if refresh:
            records = pipeline.refresh(author, start, use_enhancement=not no_ai)
        else:
            records = pipeline.generate(author, start, use_enhancement=not no_ai)
    except WorklogError as exc:
        _fail(exc)
        return

    _echo_records(records)

    if output_root:
        _echo_step(3, total_steps, "Rendering report")
        out_dir = render_report(records, output_root, f"{author.strip()}-{start.isoformat()}")
        typer.echo(f"Report written to: {out_dir}")

    enhanced = sum(1 for record in records if record.has_enhancement)
    typer.echo(f"Done. days={len(records)} enhanced={enhanced}")


@app.callback()
def main(ctx: typer.Context) -> None:
    """Load settings and configure logging for every command."""
    settings = load_settings()
    _setup_logging(settings.log_level)
    ctx.obj = settings


@app.command("init-db")
def init_db(
    ctx: typer.Context,
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Initialize the SQLite database schema."""
    target = db_path or _settings(ctx).database_path
    try:
        Store(target).init_db()
    except WorklogError as exc:
        _fail(exc)
    typer.echo(f"DB initialized: {target}")


@app.command("generate")
def generate(
    ctx: typer.Context,
    author: str = typer.Argument(..., help="Git author name (case-insensitive match)"),
    since: datetime | None = typer.Option(None, formats=DATE_FORMATS, help="First day, defaults to 7 days ago"),
    repo: Path | None = typer.Option(None, help="Git repository path (defaults to GIT_REPOSITORY_PATH or cwd)"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    refresh: bool = typer.Option(False, help="Discard cached enhancements before generating"),
    no_ai: bool = typer.Option(False, "--no-ai", help="Basic summaries only"),
    local_only: bool = typer.Option(False, help="Use the offline summary writer instead of Gemini"),
    output_root: Path | None = typer.Option(None, "--output", help="Also write a report bundle here"),
) -> None:
    """Generate daily summaries, reusing cached enhancements where valid."""
    _run(ctx, author, since, repo, db_path, refresh, no_ai, local_only, output_root)


@app.command("refresh")
def refresh(
    ctx: typer.Context,
    author: str = typer.Argument(..., help="Git author name (case-insensitive match)"),
    since: datetime | None = typer.Option(None, formats=DATE_FORMATS, help="First day, defaults to 7 days ago"),
    repo: Path | None = typer.Option(None, help="Git repository path (defaults to GIT_REPOSITORY_PATH or cwd)"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    local_only: bool = typer.Option(False, help="Use the offline summary writer instead of Gemini"),
) -> None:
    """Clear cached enhancements from SINCE on and regenerate every day."""
    _run(ctx, author, since, repo, db_path, True, False, local_only, None)


@app.command("export")
def export(
    ctx: typer.Context,
    author: str = typer.Argument(..., help="Git author name"),
    since: datetime | None = typer.Option(None, formats=DATE_FORMATS, help="First day, defaults to 7 days ago"),
    repo: Path | None = typer.Option(None, help="Git repository path (defaults to GIT_REPOSITORY_PATH or cwd)"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    output_root: Path = typer.Option(DEFAULT_OUTPUT_ROOT, "--output", help="Report output directory"),
) -> None:
    """Render stored summaries to Markdown, JSON, and HTML without touching git."""
    settings = _settings(ctx)
    start = _resolve_since(settings, since)
    try:
        name, start = validate_request(author, start, datetime.now(settings.tz).date(), settings.max_lookback_days)
        store = Store(db_path or settings.database_path)
        store.init_db()
        records = store.get_daily_summaries(name, start, repository_identifier(repo or settings.git_repository_path))
    except WorklogError as exc:
        _fail(exc)
        return

    out_dir = render_report(records, output_root, f"{name}-{start.isoformat()}")
    typer.echo(f"Exported {len(records)} day(s) to: {out_dir}")


@app.command("status")
def status(
    ctx: typer.Context,
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Print model configuration and today's generation usage."""
    settings = _settings(ctx)
    try:
        store = Store(db_path or settings.database_path)
        store.init_db()
        stats = UsageRecorder(store, settings.tz).get_today_stats()
        last_error = store.get_last_error_today(settings.tz) if stats.errors else None
    except WorklogError as exc:
        _fail(exc)
        return

    errors, warnings = settings.validate_ai()
    typer.echo(f"AI enabled: {settings.ai_enabled}")
    typer.echo(f"Primary model: {settings.ai_model_primary}")
    typer.echo(f"Fallback model: {settings.ai_model_fallback} (retry={settings.ai_retry_with_fallback})")
    typer.echo(
        "Today: "
        f"requests={stats.requests} tokens={stats.tokens} errors={stats.errors} "
        f"avg_latency_ms={stats.average_latency:.0f} success_rate={stats.success_rate:.1f}%"
    )
    if last_error:
        typer.echo(f"Last error: {last_error}")
    for message in errors:
        typer.echo(f"config error: {message}")
    for message in warnings:
        typer.echo(f"config warning: {message}")


@app.command("doctor")
def doctor(
    ctx: typer.Context,
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    repo: Path | None = typer.Option(None, help="Git repository path"),
) -> None:
    """Print local environment diagnostics used by the CLI."""
    settings = _settings(ctx)
    target_db = db_path or settings.database_path
    repo_path = repo or settings.git_repository_path
    try:
        repo_status = repository_identifier(repo_path)
    except WorklogError as exc:
        repo_status = f"invalid ({exc.message})"

    typer.echo(f"DB exists: {target_db.exists()} ({target_db})")
    typer.echo(f"Repository: {repo_status}")
    typer.echo(f"Timezone: {settings.timezone}")
    typer.echo(f"GEMINI_API_KEY set: {bool(resolve_gemini_api_key())}")


if __name__ == "__main__":
    app()
