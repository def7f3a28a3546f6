from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Coroutine, List, Optional

import typer
from rich.console import Console

from sqlcmd_pg.config import get_settings
from sqlcmd_pg.connection import Connection
from sqlcmd_pg.domain.models import ConnectionOptions, StreamOptions
from sqlcmd_pg.exceptions import SqlCmdError
from sqlcmd_pg.reporter import print_rows
from sqlcmd_pg.utils.logging import configure_logging

app = typer.Typer(help="Run SQL against PostgreSQL with pooled queries and streams.")
db_app = typer.Typer(help="Create, drop, or check the configured database.")
app.add_typer(db_app, name="db")

ARGS_OPTION = typer.Option(
    None,
    "--arg",
    "-a",
    help="Positional argument for $1, $2, ... (JSON literals are decoded, anything else is text).",
)


def _parse_arg(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    settings = get_settings()
    configure_logging(level=settings.log_level)
    try:
        return asyncio.run(coro)
    except SqlCmdError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    options = ConnectionOptions.from_settings(settings)
    typer.echo(
        f"DB={options.user}@{options.host}:{options.port}/{options.database} | "
        f"pool=({options.min_size},{options.max_size}) attempts={options.connect_attempts} "
        f"high_water_mark={settings.stream_high_water_mark}"
    )


@app.command()
def query(
    sql: str = typer.Argument(..., help="SQL to run, with $1, $2, ... markers."),
    args: Optional[List[str]] = ARGS_OPTION,
) -> None:
    """
    Run a query and print every row.
    """
    values = [_parse_arg(raw) for raw in args or []]

    async def _query() -> None:
        async with Connection() as db:
            rows = await db.query(sql, values)
        print_rows(rows)

    _run(_query())


@app.command()
def stream(
    sql: str = typer.Argument(..., help="SQL to stream, with $1, $2, ... markers."),
    args: Optional[List[str]] = ARGS_OPTION,
    high_water_mark: Optional[int] = typer.Option(
        None,
        "--high-water-mark",
        "-w",
        min=1,
        help="Rows fetched per round trip (default from settings).",
    ),
) -> None:
    """
    Stream a query, printing one table per fetched batch.
    """
    values = [_parse_arg(raw) for raw in args or []]
    window = high_water_mark or get_settings().stream_high_water_mark
    console = Console()

    async def _stream() -> None:
        total = 0
        async with Connection() as db:
            rows_stream = db.query_stream(sql, values, options=StreamOptions(high_water_mark=window))
            while True:
                rows = await rows_stream.read()
                if not rows:
                    break
                columns = [field.name for field in rows_stream.fields or ()]
                print_rows(rows, columns=columns, title=f"Rows {total + 1:,}-{total + len(rows):,}", console=console)
                total += len(rows)
        console.print(f"[green]{total:,} rows streamed[/green]")

    _run(_stream())


@db_app.command("exists")
def db_exists() -> None:
    """
    Report whether the configured database exists.
    """

    async def _exists() -> bool:
        async with Connection() as db:
            return await db.database_exists()

    exists = _run(_exists())
    typer.echo("exists" if exists else "missing")
    if not exists:
        raise typer.Exit(code=2)


@db_app.command("create")
def db_create(
    strict: bool = typer.Option(False, "--strict", help="Fail if the database already exists."),
) -> None:
    """
    Create the configured database (no-op if it already exists, unless --strict).
    """

    async def _create() -> bool:
        async with Connection() as db:
            if strict:
                await db.create_database()
                return True
            return await db.create_database_if_not_exists()

    created = _run(_create())
    typer.echo("created" if created else "not created (already exists)")


@db_app.command("drop")
def db_drop(
    strict: bool = typer.Option(False, "--strict", help="Fail if the database does not exist."),
) -> None:
    """
    Drop the configured database (no-op if it does not exist, unless --strict).
    """

    async def _drop() -> bool:
        async with Connection() as db:
            if strict:
                await db.drop_database()
                return True
            return await db.drop_database_if_exists()

    dropped = _run(_drop())
    typer.echo("dropped" if dropped else "not dropped (does not exist)")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
