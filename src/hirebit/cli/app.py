from __future__ import annotations

import json
import secrets
from datetime import datetime, timezone

import typer
import uvicorn

from hirebit.api.app import create_app
from hirebit.config import get_settings
from hirebit.core.deadlines import sweep_deadlines
from hirebit.core.ingestion import IngestionEngine, score_pending_applications
from hirebit.core.reports import ReportGenerationError, ReportGenerator, sweep_reports
from hirebit.core.scheduler import SWEEP_NAMES, build_scheduler, run_forever
from hirebit.db.base import as_utc
from hirebit.db.init import init_database
from hirebit.db.repositories import Repository
from hirebit.db.schema import resolve_schema_features
from hirebit.db.session import SessionLocal, engine
from hirebit.logging_config import configure_logging
from hirebit.types import JobStatus

app = typer.Typer(help="Hirebit applicant tracking")
jobs_app = typer.Typer(help="Job posting commands")
report_app = typer.Typer(help="Hiring report commands")
applications_app = typer.Typer(help="Application commands")

app.add_typer(jobs_app, name="jobs")
app.add_typer(report_app, name="report")
app.add_typer(applications_app, name="applications")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _parse_timestamp(value: str | None, label: str = "deadline") -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter(f"invalid ISO-8601 {label}: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@app.command("init")
def init_cmd() -> None:
    """Create directories and tables, then report the resolved schema contract."""
    configure_logging()
    features = init_database()
    typer.echo(
        json.dumps(
            {
                "ok": True,
                "schema_version": features.version,
                "webhook_supported": features.webhook_supported,
            },
            indent=2,
        )
    )


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)


@app.command("worker")
def worker(
    sweep: list[str] = typer.Option(
        [], "--sweep", help=f"Sweep to run, repeatable. One of: {', '.join(SWEEP_NAMES)}. Defaults to all."
    ),
) -> None:
    """Run background sweeps until interrupted."""
    configure_logging()
    ensure_initialized()
    try:
        scheduler = build_scheduler(sweep or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    run_forever(scheduler)


@app.command("poll-mailbox")
def poll_mailbox() -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        summary = IngestionEngine(db).poll()
    typer.echo(summary.model_dump_json(indent=2))


@app.command("sweep-deadlines")
def sweep_deadlines_cmd() -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = sweep_deadlines(db)
    typer.echo(result.model_dump_json(indent=2))


@app.command("sweep-reports")
def sweep_reports_cmd() -> None:
    configure_logging()
    ensure_initialized()
    result = sweep_reports(SessionLocal)
    typer.echo(result.model_dump_json(indent=2))


@app.command("score-pending")
def score_pending() -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = score_pending_applications(db)
    typer.echo(result.model_dump_json(indent=2))


@report_app.command("generate")
def report_generate(job_id: str = typer.Option(..., "--job-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            result = ReportGenerator(db).generate(job_id)
        except ReportGenerationError as exc:
            typer.echo(json.dumps({"ok": False, "error": str(exc)}, indent=2), err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(result.model_dump_json(indent=2))


@jobs_app.command("create")
def jobs_create(
    company: str = typer.Option(..., "--company"),
    title: str = typer.Option(..., "--title"),
    company_email: str = typer.Option("", "--company-email"),
    hr_email: str = typer.Option("", "--hr-email"),
    description: str = typer.Option("", "--description"),
    responsibilities: str = typer.Option("", "--responsibilities"),
    skill: list[str] = typer.Option([], "--skill", help="Required skill, repeatable."),
    deadline: str | None = typer.Option(None, "--deadline", help="ISO-8601; naive values are UTC."),
    meeting_link: str = typer.Option("", "--meeting-link"),
    webhook_secret: str | None = typer.Option(None, "--webhook-secret"),
    draft: bool = typer.Option(False, "--draft"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        job = Repository(db).create_job_posting(
            company_name=company,
            title=title,
            company_email=company_email,
            hr_email=hr_email,
            description=description,
            responsibilities=responsibilities,
            required_skills=skill,
            application_deadline=_parse_timestamp(deadline),
            meeting_link=meeting_link,
            webhook_secret=webhook_secret or secrets.token_urlsafe(24),
            status=JobStatus.DRAFT if draft else JobStatus.ACTIVE,
        )
        typer.echo(
            json.dumps(
                {
                    "id": job.id,
                    "title": job.title,
                    "company_id": job.company_id,
                    "status": str(job.status),
                    "webhook_secret": job.webhook_secret,
                },
                indent=2,
            )
        )


@jobs_app.command("list")
def jobs_list(limit: int = typer.Option(20, "--limit")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        rows = Repository(db).list_jobs(limit=limit)
        typer.echo(
            json.dumps(
                [
                    {
                        "id": row.id,
                        "title": row.title,
                        "status": str(row.status),
                        "application_deadline": (
                            as_utc(row.application_deadline).isoformat() if row.application_deadline else None
                        ),
                        "closed_at": as_utc(row.closed_at).isoformat() if row.closed_at else None,
                    }
                    for row in rows
                ],
                indent=2,
            )
        )


@applications_app.command("schedule-interview")
def applications_schedule_interview(
    application_id: str = typer.Option(..., "--application-id"),
    at: str = typer.Option(..., "--at", help="ISO-8601; naive values are UTC."),
    link: str = typer.Option("", "--link", help="Defaults to the job's meeting link."),
) -> None:
    """Record an interview once; a second call for the same application is refused."""
    configure_logging()
    ensure_initialized()
    interview_time = _parse_timestamp(at, "interview time")
    if not resolve_schema_features(engine).application_interview:
        typer.echo(json.dumps({"ok": False, "error": "database has no interview columns"}, indent=2), err=True)
        raise typer.Exit(code=1)

    with SessionLocal() as db:
        repo = Repository(db)
        application = repo.get_application(application_id)
        if application is None:
            typer.echo(json.dumps({"ok": False, "error": "application not found"}, indent=2), err=True)
            raise typer.Exit(code=1)
        job = repo.get_job(application.job_posting_id)
        interview_link = link or (job.meeting_link if job else "")
        if not interview_link:
            raise typer.BadParameter("no --link given and the job has no meeting link")

        if not repo.schedule_interview(application.id, interview_time=interview_time, interview_link=interview_link):
            typer.echo(json.dumps({"ok": False, "error": "interview already scheduled"}, indent=2), err=True)
            raise typer.Exit(code=1)
        typer.echo(
            json.dumps(
                {
                    "ok": True,
                    "application_id": application.id,
                    "interview_time": interview_time.isoformat(),
                    "interview_link": interview_link,
                },
                indent=2,
            )
        )
