"""SeaTime CLI: operate the sea-time inference scheduler.

Commands:
  init-db       create database tables
  scheduler     run the scheduler loop in the foreground
  tick          run a single scheduler tick and print what happened
  schedule      schedule periodic AIS checks for a vessel (by MMSI)
  verify-tasks  give every active vessel an active tracking task
  status        tracking tasks and recent entries at a glance
  serve         run the HTTP API
"""
from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table


app = typer.Typer(
    name="seatime",
    help="Automatic MCA sea-time inference from AIS positions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    from seatime.config import settings

    logging.basicConfig(level=logging.DEBUG if verbose else settings.LOG_LEVEL)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db_command():
    """Create all database tables."""
    from seatime.database import init_db

    try:
        with console.status("[bold]Creating database..."):
            init_db()
    except Exception as e:
        console.print(f"[red]Database setup failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Database ready.[/green]")


@app.command("scheduler")
def run_scheduler(
    tick_seconds: Optional[int] = typer.Option(None, "--tick-seconds", help="Seconds between ticks (default from settings)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run the background scheduler in the foreground until Ctrl+C."""
    from seatime.database import SessionLocal
    from seatime.modules.scheduler import TrackingScheduler

    _configure_logging(verbose)
    scheduler = TrackingScheduler(SessionLocal, tick_seconds=tick_seconds)
    if not scheduler.api_key:
        console.print("[yellow]MYSHIPTRACKING_API_KEY is not set: due tasks will not be polled.[/yellow]")
    console.print(f"Scheduler running every [cyan]{scheduler.tick_seconds}s[/cyan]: press Ctrl+C to stop")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        console.print("\n[dim]Scheduler stopped.[/dim]")


@app.command("tick")
def tick(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    """Run one scheduler tick now."""
    from seatime.database import SessionLocal
    from seatime.modules.scheduler import TrackingScheduler

    _configure_logging(verbose)
    summary = TrackingScheduler(SessionLocal).run_tick()
    if summary is None:
        console.print("[yellow]A tick is already in progress.[/yellow]")
        raise typer.Exit(1)

    if summary.skipped_reason:
        console.print(f"[yellow]{summary.due_tasks} due task(s) skipped: {summary.skipped_reason}[/yellow]")
        return
    if summary.due_tasks == 0:
        console.print("[green]No tasks due.[/green]")
        return

    table = Table(title=f"Tick at {summary.started_at:%Y-%m-%d %H:%M:%S} UTC")
    table.add_column("Task", justify="right")
    table.add_column("MMSI")
    table.add_column("Status")
    table.add_column("Underway h", justify="right")
    table.add_column("Result")
    table.add_column("Next run")
    for r in summary.results:
        color = "green" if r.status == "completed" else "red"
        outcome = r.reconcile_reason or r.error_kind or ""
        if r.entry_id is not None:
            outcome = f"entry #{r.entry_id}"
        table.add_row(
            str(r.task_id),
            r.mmsi,
            f"[{color}]{r.status}[/{color}]",
            f"{r.underway_hours:.2f}" if r.underway_hours is not None else "-",
            outcome,
            f"{r.next_run:%Y-%m-%d %H:%M}" if r.next_run else "[dim]still due[/dim]",
        )
    console.print(table)
    console.print(
        f"{summary.completed} completed, {summary.failed} failed, "
        f"{summary.entries_created} sea-time entr{'y' if summary.entries_created == 1 else 'ies'} created"
    )


@app.command("schedule")
def schedule(
    mmsi: str = typer.Argument(..., help="9-digit MMSI of a registered vessel"),
    interval: int = typer.Option(2, "--interval", "-i", min=1, max=24, help="Hours between checks"),
    user_id: Optional[str] = typer.Option(None, "--user", help="Owning user id"),
):
    """Schedule (or reschedule) periodic AIS checks for a vessel."""
    from seatime.database import session_scope
    from seatime.modules.task_registry import schedule_ais_checks
    from seatime.modules.vessel_registry import find_vessel_by_mmsi

    with session_scope() as db:
        vessel = find_vessel_by_mmsi(db, mmsi, user_id)
        if vessel is None:
            console.print(f"[red]No vessel with MMSI {mmsi} is registered.[/red]")
            raise typer.Exit(1)
        task = schedule_ais_checks(db, vessel, interval)
        console.print(
            f"[green]Checking {vessel.vessel_name} every {task.interval_hours}h[/green] "
            f"(first run {task.next_run:%Y-%m-%d %H:%M} UTC)"
        )


@app.command("verify-tasks")
def verify_tasks(
    interval: int = typer.Option(2, "--interval", "-i", min=1, max=24, help="Interval for newly created tasks"),
):
    """Create or reactivate tracking tasks for all active vessels."""
    from seatime.database import session_scope
    from seatime.modules.task_registry import ensure_tracking_tasks

    with session_scope() as db:
        summary = ensure_tracking_tasks(db, interval_hours=interval)

    console.print(
        f"{summary['total_active_vessels']} active vessel(s): "
        f"[green]{summary['tasks_created']} created[/green], "
        f"[yellow]{summary['tasks_reactivated']} reactivated[/yellow], "
        f"{summary['tasks_already_active']} already active"
    )


@app.command("status")
def status():
    """Show tracking tasks and the latest sea-time entries."""
    from seatime.database import session_scope
    from seatime.models.sea_time_entry import SeaTimeEntry
    from seatime.modules.task_registry import list_tasks
    from seatime.modules.vessel_registry import get_vessel
    from seatime.utils.clock import utcnow

    now = utcnow()
    with session_scope() as db:
        tasks = list_tasks(db)
        console.print("[bold]Tracking tasks[/bold]")
        if not tasks:
            console.print("  [dim]None scheduled. Use [cyan]seatime schedule MMSI[/cyan].[/dim]")
        else:
            table = Table()
            table.add_column("Task", justify="right")
            table.add_column("Vessel")
            table.add_column("Every", justify="right")
            table.add_column("Last run")
            table.add_column("Next run")
            table.add_column("Active")
            for t in tasks:
                vessel = get_vessel(db, t.vessel_id)
                overdue = t.is_active and t.next_run <= now
                table.add_row(
                    str(t.task_id),
                    f"{vessel.vessel_name} ({vessel.mmsi})" if vessel else str(t.vessel_id),
                    f"{t.interval_hours}h",
                    f"{t.last_run:%Y-%m-%d %H:%M}" if t.last_run else "[dim]never[/dim]",
                    f"[yellow]{t.next_run:%Y-%m-%d %H:%M}[/yellow]" if overdue else f"{t.next_run:%Y-%m-%d %H:%M}",
                    "[green]yes[/green]" if t.is_active else "[dim]no[/dim]",
                )
            console.print(table)

        console.print("\n[bold]Latest sea-time entries[/bold]")
        entries = db.query(SeaTimeEntry).order_by(SeaTimeEntry.start_time.desc()).limit(10).all()
        if not entries:
            console.print("  [dim]No entries yet.[/dim]")
        for e in entries:
            hours = f"{e.duration_hours}h" if e.duration_hours is not None else "open"
            console.print(f"  #{e.entry_id} {e.start_time:%Y-%m-%d %H:%M} {hours} ({e.status.value})")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the HTTP API (the background scheduler starts with it when enabled)."""
    import uvicorn

    console.print(f"API running at [cyan]http://{host}:{port}[/cyan]: press Ctrl+C to stop")
    uvicorn.run("seatime.main:app", host=host, port=port)


if __name__ == "__main__":
    app()
