"""Command-line interface for the flow timer."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from functools import partial
from pathlib import Path
from typing import Callable, Iterator, Optional

import typer

from .config import TimerSettings
from .db import database_connection, insert_category, storage_guard, upsert_task
from .errors import TimerError
from .models import Category, Task, TimerStatus
from .paths import get_db_path
from .queries import TimerQueries
from .reporting import SummaryPrinter, format_duration, format_duration_human
from .server_runner import run_server
from .state_machine import TimerStateMachine

app = typer.Typer(help="Pausable work timer with session history and stats.")

OWNER_ENVVAR = "FLOW_TIMER_OWNER"

DbOption = typer.Option(
    None, "--db", path_type=Path, help="Location of the timer SQLite database."
)
OwnerOption = typer.Option(
    "local", "--owner", envvar=OWNER_ENVVAR, help="Owner whose timer to operate on."
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@contextmanager
def _reported_errors() -> Iterator[None]:
    try:
        yield
    except TimerError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _parse_day(value: Optional[str], option: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter("Expected YYYY-MM-DD", param_hint=option) from exc


def _machine(db_path: Optional[Path]) -> TimerStateMachine:
    return TimerStateMachine(db_path or get_db_path())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(8765, "--port", min=1, max=65535, help="TCP port for the API."),
    db_path: Optional[Path] = DbOption,
    poll_seconds: float = typer.Option(
        30.0, "--poll-interval", min=1.0, help="Status poll interval advertised to clients."
    ),
) -> None:
    """Serve the timer HTTP API until interrupted."""
    settings = TimerSettings.from_intervals(poll_seconds=poll_seconds)
    run_server(host=host, port=port, db_path=db_path or get_db_path(), settings=settings)


@app.command()
def status(owner: str = OwnerOption, db_path: Optional[Path] = DbOption) -> None:
    """Show the active timer, if any."""
    with _reported_errors():
        snapshot = _machine(db_path).get_status(owner)
    SummaryPrinter().print_status(snapshot)


@app.command()
def start(
    owner: str = OwnerOption,
    db_path: Optional[Path] = DbOption,
    task_id: Optional[str] = typer.Option(None, "--task", help="Task id to attribute time to."),
    category_id: Optional[str] = typer.Option(None, "--category", help="Category id."),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Free-text note."),
    is_break: bool = typer.Option(False, "--break", help="Record the span as a break."),
) -> None:
    """Start a new timer."""
    with _reported_errors():
        timer = _machine(db_path).start(
            owner,
            task_id=task_id,
            description=description,
            is_break=is_break,
            category_id=category_id,
        )
    kind = "Break" if timer.is_break else "Timer"
    typer.echo(f"{kind} {timer.id} started at {timer.start_time:%H:%M:%S}.")


@app.command()
def pause(
    owner: str = OwnerOption,
    db_path: Optional[Path] = DbOption,
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Why the timer is paused."),
) -> None:
    """Pause the running timer."""
    with _reported_errors():
        timer = _machine(db_path).pause(owner, reason=reason)
    typer.echo(f"Timer {timer.id} paused: {timer.pause_reason}.")


@app.command()
def resume(owner: str = OwnerOption, db_path: Optional[Path] = DbOption) -> None:
    """Resume the paused timer."""
    with _reported_errors():
        result = _machine(db_path).resume(owner)
    typer.echo(
        f"Resumed after {format_duration(result.paused_duration)} "
        f"(paused {format_duration_human(result.total_paused_duration)} in total)."
    )


@app.command()
def stop(
    owner: str = OwnerOption,
    db_path: Optional[Path] = DbOption,
    description: Optional[str] = typer.Option(
        None, "--description", "-d", help="Replace the note stored with the entry."
    ),
) -> None:
    """Stop the timer and record a time entry."""
    with _reported_errors():
        entry = _machine(db_path).stop(owner, description=description)
    typer.echo(
        f"Recorded {format_duration(entry.duration)} "
        f"({format_duration_human(entry.total_paused_duration)} paused) as entry {entry.id}."
    )


@app.command()
def stats(
    owner: str = OwnerOption,
    db_path: Optional[Path] = DbOption,
    start_date: Optional[str] = typer.Option(
        None, "--start", help="First day (YYYY-MM-DD). Defaults to the first of the month."
    ),
    end_date: Optional[str] = typer.Option(
        None, "--end", help="Last day (YYYY-MM-DD). Defaults to today."
    ),
) -> None:
    """Print productivity statistics for a date range."""
    queries = TimerQueries(db_path or get_db_path())
    with _reported_errors():
        try:
            snapshot = queries.stats(
                owner, _parse_day(start_date, "--start"), _parse_day(end_date, "--end")
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
    SummaryPrinter().print_stats(snapshot)


@app.command()
def sessions(
    owner: str = OwnerOption,
    db_path: Optional[Path] = DbOption,
    start_date: Optional[str] = typer.Option(
        None, "--start", help="First day (YYYY-MM-DD). Defaults to today."
    ),
    end_date: Optional[str] = typer.Option(
        None, "--end", help="Last day (YYYY-MM-DD). Defaults to today."
    ),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Most recent events to load."),
) -> None:
    """List timer sessions reconstructed from the activity log."""
    queries = TimerQueries(db_path or get_db_path())
    with _reported_errors():
        try:
            result = queries.activities(
                owner, _parse_day(start_date, "--start"), _parse_day(end_date, "--end"), limit
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
    SummaryPrinter().print_sessions(result)


@app.command()
def watch(
    owner: str = OwnerOption,
    db_path: Optional[Path] = DbOption,
    server: Optional[str] = typer.Option(
        None, "--server", help="Base URL of a running `flow-timer serve` to watch instead."
    ),
    poll_seconds: float = typer.Option(30.0, "--poll-interval", min=1.0, help="Seconds between syncs."),
) -> None:
    """Show a live elapsed-time counter until interrupted."""
    from .projector import ElapsedTimeProjector

    settings = TimerSettings.from_intervals(poll_seconds=poll_seconds)
    client = None
    if server:
        from .client import TimerClient

        client = TimerClient(server, owner, settings=settings)
        source: Callable[[], TimerStatus] = client.get_status
        refresh = None
    else:
        machine = _machine(db_path)
        source = partial(machine.get_status, owner)
        refresh = machine.refresh

    def render(seconds: int) -> None:
        typer.echo(f"\r{format_duration(seconds):>8}", nl=False)

    projector = ElapsedTimeProjector(source, settings=settings, on_render=render, refresh=refresh)
    projector.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        typer.echo()
    finally:
        projector.close()
        if client is not None:
            client.close()


@app.command("add-category")
def add_category(
    name: str = typer.Argument(..., help="Category name."),
    db_path: Optional[Path] = DbOption,
    color: str = typer.Option("#64748b", "--color", help="Display colour."),
    billable: bool = typer.Option(False, "--billable", help="Mark the category billable."),
) -> None:
    """Create a category and print its id."""
    category = Category(id=str(uuid.uuid4()), name=name.strip(), color=color, is_billable=billable)
    with _reported_errors(), database_connection(db_path or get_db_path()) as conn:
        try:
            with storage_guard("category save"):
                insert_category(conn, category)
        except ValueError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(category.id)


@app.command("add-task")
def add_task(
    title: str = typer.Argument(..., help="Task title."),
    db_path: Optional[Path] = DbOption,
    task_id: Optional[str] = typer.Option(None, "--id", help="Reuse an existing task id."),
) -> None:
    """Create or rename a task and print its id."""
    task = Task(id=task_id or str(uuid.uuid4()), title=title.strip())
    with _reported_errors(), database_connection(db_path or get_db_path()) as conn:
        with storage_guard("task save"):
            upsert_task(conn, task)
    typer.echo(task.id)
