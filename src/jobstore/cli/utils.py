"""
CLI utility helpers: output formatting and store construction.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from jobstore.core.errors import JobStoreError
from jobstore.core.logging import configure_logging
from jobstore.core.settings import load_settings
from jobstore.scheduling import JobStore

console = Console()
err_console = Console(stderr=True)


# ── Store helper ─────────────────────────────────────────────────────────


def database_url(database: str | None) -> str | None:
    """Accept either a SQLAlchemy URL or a path to a SQLite file."""
    if database is None or "://" in database:
        return database
    return f"sqlite:///{database}"


def open_store(database: str | None = None, instance: str | None = None) -> JobStore:
    """Build a ``JobStore`` from ``JOBSTORE_*`` settings plus CLI overrides."""
    overrides: dict[str, Any] = {}
    if database is not None:
        overrides["database_url"] = database_url(database)
    if instance is not None:
        overrides["instance_name"] = instance
    settings = load_settings(**overrides)
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")
    return JobStore.from_settings(settings)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn job store errors into a red message and exit code 1."""
    try:
        yield
    except JobStoreError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def output_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of dicts as JSON or a Rich table."""
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def output_dict(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a single dict as JSON or key-value pairs."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
