# ruff: noqa: I001
"""CLI for the ``statement_ingest`` package.

A Typer-based console interface over :func:`statement_ingest.api.upload_statement`.
Environment variables (``DATABASE_URL``, ``SI_*``) are loaded from a local
``.env`` using ``python-dotenv`` before any command runs.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .config import IngestSettings
from .errors import ConfigurationError
from .logging_setup import configure_logging


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank and credit card statements (CSV, XLSX, XLS) into the ledger. "
        "Loads DATABASE_URL and SI_* settings from a local .env before running."
    ),
)


# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
STATEMENT_PATH_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Path to the statement file to import",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a readable error instead
)


def _parse_month(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m").date()
    except ValueError as exc:
        raise typer.BadParameter("expected YYYY-MM", param_hint="--month") from exc


def _settings(database_url: str | None, cutoff_day: int | None) -> IngestSettings:
    try:
        settings = IngestSettings.from_env().with_overrides(
            database_url=database_url, cutoff_day=cutoff_day
        )
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(2) from exc
    return settings


@app.command("upload")
def upload_cmd(
    path: Annotated[Path, STATEMENT_PATH_ARGUMENT],
    *,
    user_id: int = typer.Option(..., "--user-id", help="Owner of the imported transactions."),
    format_name: str | None = typer.Option(
        None, "--format", help="Skip detection and use this configured format."
    ),
    cutoff_day: int | None = typer.Option(
        None, help="Billing cutoff day (overrides SI_BILLING_CUTOFF_DAY)."
    ),
    month: str | None = typer.Option(
        None, help="Report every row under this statement month (YYYY-MM)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    categorize: bool = typer.Option(
        True, help="Resolve categories from the ledger_categories table."
    ),
) -> None:
    """Import one statement file and print the upload result as JSON."""

    # Deferred imports keep `--help` fast.
    from .api import upload_statement
    from .categories import DbCategoryResolver
    from .persistence import SqlAlchemyStore

    assigned_month = _parse_month(month)
    settings = _settings(database_url, cutoff_day)
    if not settings.database_url:
        typer.echo("Error: DATABASE_URL is not set.", err=True)
        raise typer.Exit(2)

    try:
        payload = path.read_bytes()
    except OSError as exc:
        typer.echo(f"Error: cannot read {path}: {exc.strerror or exc}", err=True)
        raise typer.Exit(2) from exc

    try:
        result = upload_statement(
            payload,
            file_name=path.name,
            user_id=user_id,
            store=SqlAlchemyStore(settings.database_url),
            category_resolver=(
                DbCategoryResolver(user_id, database_url=settings.database_url)
                if categorize
                else None
            ),
            format_hint=format_name,
            assigned_month=assigned_month,
            settings=settings,
        )
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(2) from exc

    typer.echo(json.dumps(result.to_dict(), ensure_ascii=False))
    if result.batch is not None:
        for outcome in result.batch.errors:
            typer.echo(f"row {outcome.row_index}: {outcome.reason}", err=True)
    if not result.success:
        raise typer.Exit(1)


@app.command("formats")
def formats_cmd() -> None:
    """List the configured statement formats."""

    settings = _settings(None, None)
    try:
        registry = settings.load_registry()
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(2) from exc
    for spec in registry:
        typer.echo(f"{spec.name}\t{spec.kind}\t{spec.description}")


@app.command("init-db")
def init_db_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Create the ledger tables directly (local SQLite use; prefer Alembic)."""

    from db import Base
    from db.client import get_engine

    settings = _settings(database_url, None)
    if not settings.database_url:
        typer.echo("Error: DATABASE_URL is not set.", err=True)
        raise typer.Exit(2)
    Base.metadata.create_all(bind=get_engine(database_url=settings.database_url))
    typer.echo("ledger tables ready")


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    app()
