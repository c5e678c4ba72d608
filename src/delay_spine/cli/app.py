"""
Root Typer application for the delay-spine CLI.

Commands talk to the shared store configured by ``DELAY_SPINE_*``
environment variables. ``sweep`` goes through the same gate and lock as
every other caller of ``run()``, so it is safe to put in cron.
"""

from __future__ import annotations

import typer

from delay_spine.cli import utils

app = typer.Typer(
    name="delay-spine",
    help="delay-spine: distributed delayed-task scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from delay_spine import __version__

        typer.echo(f"delay-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """delay-spine CLI: schedule, sweep and inspect delayed tasks."""


@app.command("schedule")
def schedule_task(
    target_type: str = typer.Argument(..., help="Target type, e.g. User"),
    method_name: str = typer.Argument(..., help="Method to call on the target"),
    target_id: str = typer.Argument(..., help="Target identifier"),
    delay: float = typer.Option(0.0, "--in", help="Delay in seconds"),
    at: int | None = typer.Option(None, "--at", help="Absolute Unix due time (overrides --in)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Schedule a delayed method call."""
    with utils.cli_errors():
        scheduler = utils.make_scheduler()
        if at is not None:
            task = scheduler.schedule_at(at, target_type, method_name, target_id)
        else:
            task = scheduler.schedule(delay, target_type, method_name, target_id)
        key = scheduler.tasks.key_for(task)

    data = {"key": key, **task.to_dict()}
    if json_out:
        utils.print_json(data)
    else:
        utils.print_mapping(data, title="Task Scheduled")


@app.command("sweep")
def sweep(
    now: float | None = typer.Option(None, "--now", help="Sweep timestamp (default: current time)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Attempt one sweep through the gate and lock."""
    with utils.cli_errors():
        scheduler = utils.make_scheduler()
        result = scheduler.run(now)

    if json_out:
        utils.print_json(result.to_dict())
        return
    if not result.admitted:
        utils.console.print("[yellow]Not admitted[/yellow] (throttled by the sweep timer)")
    elif not result.lock_acquired:
        utils.console.print("[yellow]Skipped[/yellow] (another process holds the sweep lock)")
    else:
        utils.print_mapping(result.to_dict(), title="Sweep")


@app.command("pending")
def pending(
    limit: int | None = typer.Option(None, "--limit", "-n", min=1),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List scheduled tasks, oldest first."""
    with utils.cli_errors():
        scheduler = utils.make_scheduler()
        entries = scheduler.tasks.pending(limit)

    if json_out:
        utils.print_json([utils.entry_to_dict(e) for e in entries])
    else:
        utils.print_entries(entries, title="Pending Tasks")


@app.command("health")
def health(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show store reachability, backlog and sweep lock state."""
    with utils.cli_errors():
        scheduler = utils.make_scheduler()
        report = scheduler.health()

    data = report.to_dict()
    if json_out:
        utils.print_json(data)
    else:
        data.pop("stats", None)
        utils.print_mapping(data, title="Scheduler Health")
    if not report.healthy:
        raise typer.Exit(code=1)


@app.command("unlock")
def unlock(
    force: bool = typer.Option(False, "--force", help="Required: delete the lock whoever holds it"),
) -> None:
    """Delete a stuck sweep lock."""
    if not force:
        utils.err_console.print("[bold red]Refusing[/bold red] to delete the sweep lock without --force")
        raise typer.Exit(code=1)

    with utils.cli_errors():
        scheduler = utils.make_scheduler()
        holder = scheduler.lock.holder()
        removed = scheduler.lock.force_release()

    if removed:
        owner = holder.owner if holder else "unknown"
        utils.console.print(f"[green]Released[/green] sweep lock held by {owner}")
    else:
        utils.console.print("Sweep lock was not held")
