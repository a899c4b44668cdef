"""
CLI utility helpers: output formatting and driver management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from spine_migrate.core.errors import MigrateError
from spine_migrate.core.settings import DriverConfig, get_settings
from spine_migrate.drivers.postgres import PostgresDriver

console = Console()
err_console = Console(stderr=True)


# ── Driver helper ────────────────────────────────────────────────────────


@contextmanager
def open_driver(database_url: str | None = None) -> Iterator[PostgresDriver]:
    """Open a driver from settings (``MIGRATE_*``), closing it on exit."""
    settings = get_settings()
    driver = PostgresDriver.open(
        database_url or settings.database_url,
        DriverConfig.from_settings(settings),
    )
    try:
        yield driver
    finally:
        driver.close()


def fail(error: MigrateError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    if isinstance(error, MigrateError):
        err_console.print(
            f"[bold red]Error[/bold red] ({error.category.value}): {escape(str(error))}",
            highlight=False,
        )
    else:
        err_console.print(f"[bold red]Error[/bold red]: {escape(error)}", highlight=False)
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / dict to plain dict."""
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dataclass, dict or list of them to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
