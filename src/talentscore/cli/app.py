from __future__ import annotations

import json

import typer
import uvicorn

from talentscore.api.app import create_app
from talentscore.config import get_settings
from talentscore.core.events import LoggingObserver, MemoryObserver
from talentscore.core.scheduler import ScoringScheduler, resolve_phase
from talentscore.db.init import init_database
from talentscore.db.repositories import Repository
from talentscore.db.session import SessionLocal
from talentscore.logging_config import configure_logging

app = typer.Typer(help="talentscore CLI")
score_app = typer.Typer(help="Run the scoring pipeline")
jobs_app = typer.Typer(help="Scoring job ledger")
talent_app = typer.Typer(help="Talent profiles and evidence")

app.add_typer(score_app, name="score")
app.add_typer(jobs_app, name="jobs")
app.add_typer(talent_app, name="talent")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


@app.command("init")
def init_cmd() -> None:
    """Create the database and its tables."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


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


@score_app.command("run")
def score_run(
    phase: str = typer.Option("all", "--phase", help="all, harvest, or queue"),
    verbose: bool = typer.Option(False, "--verbose", help="Include pipeline events in the output"),
) -> None:
    """Run one scheduled invocation locally, without the HTTP credential check."""
    configure_logging()
    ensure_initialized()
    try:
        selected = resolve_phase(phase)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    observer = MemoryObserver() if verbose else LoggingObserver()
    with SessionLocal() as db:
        summary = ScoringScheduler(db, observer=observer).run(selected)

    output = summary.model_dump(by_alias=True)
    if isinstance(observer, MemoryObserver):
        output["events"] = [{"name": event.name, **event.fields} for event in observer.events]
    typer.echo(json.dumps(output, indent=2, default=str))


@jobs_app.command("list")
def jobs_list(
    status: str | None = typer.Option(None, "--status"),
    talent_id: int | None = typer.Option(None, "--talent-id"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        rows = Repository(db).list_jobs(talent_id=talent_id, status=status, limit=limit)
        payload = [
            {
                "id": row.id,
                "talent_id": row.talent_id,
                "session_id": row.session_id,
                "status": row.status,
                "overall_score": row.overall_score,
                "error_message": row.error_message,
                "created_at": row.created_at.isoformat() if row.created_at else None,
                "completed_at": row.completed_at.isoformat() if row.completed_at else None,
            }
            for row in rows
        ]
    typer.echo(json.dumps(payload, indent=2))


@talent_app.command("add")
def talent_add(
    first_name: str = typer.Option(..., "--first-name"),
    last_name: str = typer.Option("", "--last-name"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        talent = Repository(db).create_talent(first_name=first_name, last_name=last_name)
        typer.echo(json.dumps({"id": talent.id, "name": talent.display_name}, indent=2))


@talent_app.command("add-document")
def talent_add_document(
    talent_id: int = typer.Option(..., "--talent-id"),
    file_url: str = typer.Option(..., "--file-url"),
    file_name: str = typer.Option("", "--file-name"),
    file_type: str = typer.Option("", "--file-type"),
    title: str = typer.Option("", "--title"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        if not repo.get_talent(talent_id):
            raise typer.BadParameter(f"talent {talent_id} not found")
        document = repo.add_document(
            talent_id=talent_id,
            file_url=file_url,
            file_name=file_name,
            file_type=file_type,
            title=title,
        )
        typer.echo(json.dumps({"id": document.id, "talent_id": talent_id}, indent=2))
