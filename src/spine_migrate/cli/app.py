"""
Root Typer application for the spine-migrate CLI.

Commands
────────
split     Show the statements a migration file splits into
locate    Translate an engine error position into line/column
version   Show the schema's version row
apply     Apply one migration file as a given version
force     Overwrite the version row (clears the dirty flag)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from spine_migrate.cli.utils import console, fail, open_driver, output
from spine_migrate.core.errors import MigrateError
from spine_migrate.core.logging import LogContext, configure_logging, get_logger
from spine_migrate.core.positions import logical_position, map_position
from spine_migrate.core.settings import get_settings
from spine_migrate.multistmt.parser import DEFAULT_BUFFER_SIZE, ParseConfig, parse
from spine_migrate.multistmt.statement import Statement

logger = get_logger(__name__)

app = typer.Typer(
    name="spine-migrate",
    help="spine-migrate: split, locate and apply PostgreSQL migrations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@dataclass
class StatementRow:
    index: int
    line: int
    text: str


@dataclass
class Location:
    file: str
    position: int
    line: int
    column: int


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from spine_migrate import __version__

        typer.echo(f"spine-migrate {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override MIGRATE_LOG_LEVEL."),
) -> None:
    """spine-migrate CLI: PostgreSQL migration execution engine."""
    settings = get_settings()
    json_format = {"json": True, "console": False}.get(settings.log_format)
    configure_logging(level=log_level or settings.log_level, json_format=json_format)


# ── Offline commands ─────────────────────────────────────────────────────


def _read_script(file: Path) -> str:
    """Read FILE without newline translation; CRs count in server positions."""
    return file.read_bytes().decode("utf-8")


def _statement_line(script: str, statement: Statement) -> int:
    """Line of the statement's first non-blank character."""
    stripped = len(statement.text) - len(statement.text.lstrip())
    raw = statement.source_position(min(stripped + 1, len(statement.text)))
    if raw is None:
        return 0
    line, _, _ = map_position(script, logical_position(script, raw))
    return line


@app.command()
def split(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    replace: str | None = typer.Option(None, "--replace", help="Value for <SCHEMA_NAME>."),
    buffer_size: int = typer.Option(DEFAULT_BUFFER_SIZE, "--buffer-size", min=1),
    trace: bool = typer.Option(False, "--trace", help="Log every parser step at DEBUG."),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show the statements FILE splits into, in execution order."""
    script = _read_script(file)
    rows: list[StatementRow] = []

    def collect(statement: Statement) -> None:
        rows.append(
            StatementRow(
                index=len(rows) + 1,
                line=_statement_line(script, statement),
                text=statement.text.strip(),
            )
        )

    parse(script, collect, ParseConfig(buffer_size=buffer_size, replacement=replace or "", trace=trace))
    output(rows, as_json=json_out, title=f"Statements in {file.name}")


@app.command()
def locate(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    position: int = typer.Argument(..., help="1-based character position reported by the server."),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Translate a server-reported POSITION in FILE into line and column.

    POSITION counts every character the server received, carriage returns
    included; the reported column does not.
    """
    script = _read_script(file)
    line, column, ok = map_position(script, logical_position(script, position))
    if not ok:
        fail(f"position {position} is outside {file}")
    output(
        Location(file=str(file), position=position, line=line, column=column),
        as_json=json_out,
        title="Location",
    )


# ── Database commands ────────────────────────────────────────────────────


@app.command()
def version(
    database_url: str | None = typer.Option(None, "--database-url", "-d"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show the schema's current version and dirty flag."""
    try:
        with open_driver(database_url) as driver:
            current = driver.version()
    except MigrateError as e:
        fail(e)
    output(current, as_json=json_out, title="Schema Version")


@app.command()
def apply(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    target: int = typer.Option(..., "--version", "-v", min=0, help="Version FILE brings the schema to."),
    database_url: str | None = typer.Option(None, "--database-url", "-d"),
) -> None:
    """Apply FILE in one transaction under the schema lock.

    The version row is marked dirty before the transaction starts, so a
    failed run stays visible as ``dirty`` until someone runs ``force``.
    """
    script = _read_script(file)
    with LogContext(migration=file.name, version=target):
        try:
            with open_driver(database_url) as driver:
                driver.lock()
                try:
                    current = driver.version()
                    if current.dirty:
                        fail(
                            f"schema {driver.schema_name} is dirty at version {current.version}; "
                            "fix it manually, then run `spine-migrate force`"
                        )
                    driver.set_version(target, True)
                    driver.begin()
                    try:
                        driver.run(script)
                        driver.set_version(target, False)
                        driver.commit()
                    except MigrateError:
                        driver.rollback()
                        raise
                finally:
                    driver.unlock()
        except MigrateError as e:
            fail(e)
        logger.info("cli.apply.completed", file=str(file), version=target)
    console.print(f"[green]Applied[/green] {file.name} → version {target}")


@app.command()
def force(
    target: int = typer.Argument(..., min=-1, help="Version to record; -1 clears the row."),
    database_url: str | None = typer.Option(None, "--database-url", "-d"),
) -> None:
    """Overwrite the version row with TARGET and a clean dirty flag."""
    try:
        with open_driver(database_url) as driver:
            driver.lock()
            try:
                driver.set_version(target, False)
            finally:
                driver.unlock()
    except MigrateError as e:
        fail(e)
    console.print(f"[green]Forced[/green] version {target}")
