from __future__ import annotations

import json
import sys
from typing import Optional

import psycopg
import typer
from loguru import logger

from . import sql as q
from .models import LogEntry, LogEntryType
from .settings import WriterSettings
from .writer import SqlLogWriter

app = typer.Typer(help="sqllog operational CLI")


def dsn_opt() -> str:
    return typer.Option(..., "--dsn", envvar="SQLLOG_DSN", help="PostgreSQL DSN of the log database")


@app.command("schema")
def schema():
    """Print the log database DDL."""
    typer.echo(q.schema_script())


@app.command("init-schema")
def init_schema(dsn: str = dsn_opt()):
    """Create the log tables, row types and the write_log procedure."""
    try:
        with psycopg.connect(dsn) as conn:
            q.apply_schema(conn)
        logger.success("Log schema is up to date")
    except psycopg.Error as e:
        logger.error(f"Failed to apply log schema: {e}")
        sys.exit(1)


@app.command("ping")
def ping(dsn: str = dsn_opt()):
    ok = True
    try:
        with psycopg.connect(dsn) as conn, conn.cursor() as cur:
            cur.execute(q.HEALTH)
            cur.fetchone()
    except psycopg.Error as e:
        logger.error(f"Log database unreachable: {e}")
        ok = False
    typer.echo(json.dumps({"ok": ok}, indent=2))
    if not ok:
        raise typer.Exit(code=1)


@app.command("send")
def send(
    message: str = typer.Argument(..., help="Message text"),
    application: str = typer.Option(..., "--application"),
    environment: str = typer.Option("Default", "--environment"),
    component: str = typer.Option("Default", "--component"),
    entry_type: LogEntryType = typer.Option(LogEntryType.INFORMATION, "--type"),
    source: str = typer.Option("sqllog.cli", "--source"),
    message_id: int = typer.Option(0, "--message-id"),
    close_wait: Optional[float] = typer.Option(None, "--close-wait", help="Seconds to wait for the write"),
    dsn: str = dsn_opt(),
):
    """Write a single entry through a writer and wait for it to be flushed."""
    settings = WriterSettings(dsn=dsn)
    if close_wait is not None:
        settings = settings.model_copy(update={"close_wait": close_wait})

    writer = SqlLogWriter(settings, name="cli")
    writer.enqueue(
        LogEntry(
            type=entry_type,
            application=application,
            environment=environment,
            component=component,
            source=source,
            message_id=message_id,
            message=message,
        )
    )
    writer.close()

    if writer.pending:
        logger.error(f"{writer.pending} entry not written")
        raise typer.Exit(code=1)
    typer.echo("ok")


if __name__ == "__main__":
    app()
