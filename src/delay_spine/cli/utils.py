"""
CLI utility helpers: scheduler construction and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from delay_spine.core.errors import DelayError
from delay_spine.core.kv import RedisStore
from delay_spine.core.logging import configure_logging
from delay_spine.core.scheduling import DelayedScheduler, DueEntry, create_scheduler
from delay_spine.core.settings import SchedulerSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Scheduler helper ─────────────────────────────────────────────────────


def make_scheduler(settings: SchedulerSettings | None = None) -> DelayedScheduler:
    """Build a scheduler on Redis with the Celery backend from settings."""
    from delay_spine.execution.celery_backend import CeleryExecutionBackend, create_celery_app

    settings = settings or get_settings()
    configure_logging(settings)
    backend = CeleryExecutionBackend(
        create_celery_app(settings),
        task_name=settings.celery_task_name,
        queue=settings.celery_queue,
    )
    return create_scheduler(RedisStore(settings.redis_url), backend, settings)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Render scheduler errors as a one-line message and exit 1."""
    try:
        yield
    except DelayError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_mapping(data: dict[str, Any], *, title: str = "") -> None:
    table = Table(title=title or None, show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(str(key), "" if value is None else str(value))
    console.print(table)


def entry_to_dict(entry: DueEntry) -> dict[str, Any]:
    if entry.task is not None:
        return {"key": entry.key, "score": entry.score, **entry.task.to_dict()}
    return {
        "key": entry.key,
        "score": entry.score,
        "error": entry.error.message if entry.error else "malformed",
    }


def print_entries(entries: list[DueEntry], *, title: str = "") -> None:
    table = Table(title=title or None)
    for column in ("Due", "Target type", "Method", "Target ID", "Key"):
        table.add_column(column)
    for entry in entries:
        if entry.task is None:
            table.add_row(str(int(entry.score)), "[red]malformed[/red]", "", "", entry.key)
        else:
            task = entry.task
            table.add_row(str(task.due_at), task.target_type, task.method_name, task.target_id, entry.key)
    console.print(table)
    console.print(f"[dim]{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}[/dim]")
