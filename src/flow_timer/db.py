"""SQLite database layer for active timers, activity events and time entries."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .clock import ensure_utc
from .errors import StorageError
from .models import ActiveTimer, ActivityEvent, Category, Task, TimeEntry, TimerAction

logger = logging.getLogger(__name__)

DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"


def format_ts(value: datetime) -> str:
    """Render a timestamp as sortable UTC text."""
    return ensure_utc(value).strftime(DATETIME_FMT)


def parse_ts(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT).replace(tzinfo=timezone.utc)


def _parse_optional_ts(value: Optional[str]) -> Optional[datetime]:
    return parse_ts(value) if value else None


def open_database(
    path: Path, *, check_same_thread: bool = True, busy_timeout: float = 5.0
) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    try:
        conn = sqlite3.connect(
            path,
            isolation_level=None,
            check_same_thread=check_same_thread,
            timeout=busy_timeout,
        )
        conn.row_factory = sqlite3.Row
        enable_foreign_keys(conn)
        initialize_schema(conn)
    except sqlite3.Error as exc:
        raise StorageError(f"Could not open database at {path}: {exc}") from exc
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block in an immediate transaction; nothing is kept on failure."""
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as exc:
        raise StorageError(f"Could not begin transaction: {exc}") from exc
    try:
        yield conn
    except sqlite3.Error as exc:
        _rollback(conn)
        raise StorageError(str(exc)) from exc
    except BaseException:
        _rollback(conn)
        raise
    try:
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        _rollback(conn)
        raise StorageError(f"Could not commit transaction: {exc}") from exc


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """Translate sqlite errors raised inside the block into StorageError."""
    try:
        yield
    except sqlite3.Error as exc:
        logger.exception("Storage failure during %s", operation)
        raise StorageError(f"{operation} failed: {exc}") from exc


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS active_timers (
            owner_id TEXT PRIMARY KEY,
            id TEXT NOT NULL UNIQUE,
            task_id TEXT,
            category_id TEXT,
            start_time TEXT NOT NULL,
            is_break INTEGER NOT NULL DEFAULT 0,
            description TEXT,
            paused_at TEXT,
            pause_reason TEXT,
            total_paused_duration INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS activity_log (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            timer_id TEXT NOT NULL,
            action TEXT NOT NULL
                CHECK (action IN ('started', 'paused', 'resumed', 'stopped')),
            created_at TEXT NOT NULL,
            details TEXT NOT NULL DEFAULT '{}'
        );

        CREATE INDEX IF NOT EXISTS idx_activity_owner_created
            ON activity_log(owner_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_activity_owner_timer
            ON activity_log(owner_id, timer_id);

        CREATE TRIGGER IF NOT EXISTS activity_log_no_update
            BEFORE UPDATE ON activity_log
            BEGIN SELECT RAISE(ABORT, 'activity_log is append-only'); END;
        CREATE TRIGGER IF NOT EXISTS activity_log_no_delete
            BEFORE DELETE ON activity_log
            BEGIN SELECT RAISE(ABORT, 'activity_log is append-only'); END;

        CREATE TABLE IF NOT EXISTS time_entries (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            task_id TEXT,
            category_id TEXT,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            duration_seconds INTEGER NOT NULL CHECK (duration_seconds >= 0),
            total_paused_duration INTEGER NOT NULL DEFAULT 0,
            is_break INTEGER NOT NULL DEFAULT 0,
            description TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_entries_owner_start
            ON time_entries(owner_id, start_time);

        CREATE TRIGGER IF NOT EXISTS time_entries_no_update
            BEFORE UPDATE ON time_entries
            BEGIN SELECT RAISE(ABORT, 'time entries are immutable'); END;

        CREATE TABLE IF NOT EXISTS time_categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            color TEXT NOT NULL DEFAULT '#64748b',
            is_billable INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL
        );
        """
    )


# Active timers


def fetch_active_timer(conn: sqlite3.Connection, owner_id: str) -> Optional[ActiveTimer]:
    row = conn.execute(
        """
        SELECT id, owner_id, task_id, category_id, start_time, is_break, description,
               paused_at, pause_reason, total_paused_duration
        FROM active_timers
        WHERE owner_id = ?
        """,
        (owner_id,),
    ).fetchone()
    if row is None:
        return None
    paused_at = _parse_optional_ts(row["paused_at"])
    return ActiveTimer(
        id=row["id"],
        owner_id=row["owner_id"],
        task_id=row["task_id"],
        category_id=row["category_id"],
        start_time=parse_ts(row["start_time"]),
        is_break=bool(row["is_break"]),
        description=row["description"],
        is_paused=paused_at is not None,
        paused_at=paused_at,
        pause_reason=row["pause_reason"],
        total_paused_duration=int(row["total_paused_duration"] or 0),
    )


def insert_active_timer(conn: sqlite3.Connection, timer: ActiveTimer) -> None:
    conn.execute(
        """
        INSERT INTO active_timers (
            owner_id, id, task_id, category_id, start_time, is_break, description,
            paused_at, pause_reason, total_paused_duration
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            timer.owner_id,
            timer.id,
            timer.task_id,
            timer.category_id,
            format_ts(timer.start_time),
            1 if timer.is_break else 0,
            timer.description,
            format_ts(timer.paused_at) if timer.paused_at else None,
            timer.pause_reason,
            timer.total_paused_duration,
        ),
    )


def save_pause_state(conn: sqlite3.Connection, timer: ActiveTimer) -> None:
    """Persist the pause columns of an active timer."""
    cur = conn.execute(
        """
        UPDATE active_timers
        SET paused_at = ?, pause_reason = ?, total_paused_duration = ?
        WHERE owner_id = ? AND id = ?
        """,
        (
            format_ts(timer.paused_at) if timer.is_paused and timer.paused_at else None,
            timer.pause_reason if timer.is_paused else None,
            timer.total_paused_duration,
            timer.owner_id,
            timer.id,
        ),
    )
    if cur.rowcount == 0:
        raise StorageError(f"Active timer {timer.id} disappeared during update")


def delete_active_timer(conn: sqlite3.Connection, owner_id: str, timer_id: str) -> None:
    cur = conn.execute(
        "DELETE FROM active_timers WHERE owner_id = ? AND id = ?",
        (owner_id, timer_id),
    )
    if cur.rowcount == 0:
        raise StorageError(f"Active timer {timer_id} disappeared during stop")


# Activity log


def insert_activity_event(conn: sqlite3.Connection, event: ActivityEvent) -> None:
    conn.execute(
        """
        INSERT INTO activity_log (id, owner_id, timer_id, action, created_at, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.id,
            event.owner_id,
            event.timer_id,
            event.action.value,
            format_ts(event.created_at),
            json.dumps(event.details, sort_keys=True),
        ),
    )


def fetch_activity_events(
    conn: sqlite3.Connection,
    owner_id: str,
    start: datetime,
    end: datetime,
    limit: int,
) -> list[ActivityEvent]:
    """Return the most recent ``limit`` events in ``[start, end)``, oldest first."""
    rows = conn.execute(
        """
        SELECT id, owner_id, timer_id, action, created_at, details FROM (
            SELECT id, owner_id, timer_id, action, created_at, details, rowid AS seq
            FROM activity_log
            WHERE owner_id = ? AND created_at >= ? AND created_at < ?
            ORDER BY created_at DESC, seq DESC
            LIMIT ?
        )
        ORDER BY created_at ASC, seq ASC
        """,
        (owner_id, format_ts(start), format_ts(end), limit),
    ).fetchall()
    return [_row_to_event(row) for row in rows]


def fetch_timer_events(
    conn: sqlite3.Connection, owner_id: str, timer_id: str
) -> list[ActivityEvent]:
    rows = conn.execute(
        """
        SELECT id, owner_id, timer_id, action, created_at, details
        FROM activity_log
        WHERE owner_id = ? AND timer_id = ?
        ORDER BY created_at ASC, rowid ASC
        """,
        (owner_id, timer_id),
    ).fetchall()
    return [_row_to_event(row) for row in rows]


def _row_to_event(row: sqlite3.Row) -> ActivityEvent:
    return ActivityEvent(
        id=row["id"],
        owner_id=row["owner_id"],
        timer_id=row["timer_id"],
        action=TimerAction(row["action"]),
        created_at=parse_ts(row["created_at"]),
        details=json.loads(row["details"] or "{}"),
    )


# Time entries


def insert_time_entry(conn: sqlite3.Connection, entry: TimeEntry) -> None:
    conn.execute(
        """
        INSERT INTO time_entries (
            id, owner_id, task_id, category_id, start_time, end_time,
            duration_seconds, total_paused_duration, is_break, description
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry.id,
            entry.owner_id,
            entry.task_id,
            entry.category_id,
            format_ts(entry.start_time),
            format_ts(entry.end_time),
            entry.duration,
            entry.total_paused_duration,
            1 if entry.is_break else 0,
            entry.description,
        ),
    )


def fetch_time_entries(
    conn: sqlite3.Connection, owner_id: str, start: datetime, end: datetime
) -> list[TimeEntry]:
    """Fetch entries whose start time falls in ``[start, end)``."""
    rows = conn.execute(
        """
        SELECT id, owner_id, task_id, category_id, start_time, end_time,
               duration_seconds, total_paused_duration, is_break, description
        FROM time_entries
        WHERE owner_id = ? AND start_time >= ? AND start_time < ?
        ORDER BY start_time
        """,
        (owner_id, format_ts(start), format_ts(end)),
    ).fetchall()
    return [_row_to_entry(row) for row in rows]


def fetch_time_entry(conn: sqlite3.Connection, entry_id: str) -> Optional[TimeEntry]:
    row = conn.execute(
        """
        SELECT id, owner_id, task_id, category_id, start_time, end_time,
               duration_seconds, total_paused_duration, is_break, description
        FROM time_entries
        WHERE id = ?
        """,
        (entry_id,),
    ).fetchone()
    return _row_to_entry(row) if row else None


def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry(
        id=row["id"],
        owner_id=row["owner_id"],
        task_id=row["task_id"],
        category_id=row["category_id"],
        start_time=parse_ts(row["start_time"]),
        end_time=parse_ts(row["end_time"]),
        duration=int(row["duration_seconds"]),
        total_paused_duration=int(row["total_paused_duration"] or 0),
        is_break=bool(row["is_break"]),
        description=row["description"],
    )


# Task / category directory


def insert_category(conn: sqlite3.Connection, category: Category) -> None:
    try:
        conn.execute(
            """
            INSERT INTO time_categories (id, name, color, is_billable)
            VALUES (?, ?, ?, ?)
            """,
            (category.id, category.name, category.color, 1 if category.is_billable else 0),
        )
    except sqlite3.IntegrityError as exc:
        raise ValueError(f"Category with name {category.name!r} already exists") from exc


def fetch_categories(conn: sqlite3.Connection) -> list[Category]:
    rows = conn.execute(
        "SELECT id, name, color, is_billable FROM time_categories ORDER BY name COLLATE NOCASE"
    ).fetchall()
    return [
        Category(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            is_billable=bool(row["is_billable"]),
        )
        for row in rows
    ]


def upsert_task(conn: sqlite3.Connection, task: Task) -> None:
    conn.execute(
        """
        INSERT INTO tasks (id, title) VALUES (?, ?)
        ON CONFLICT(id) DO UPDATE SET title = excluded.title
        """,
        (task.id, task.title),
    )


def fetch_tasks(conn: sqlite3.Connection) -> list[Task]:
    rows = conn.execute("SELECT id, title FROM tasks ORDER BY title COLLATE NOCASE").fetchall()
    return [Task(id=row["id"], title=row["title"]) for row in rows]


def fetch_task_titles(conn: sqlite3.Connection, task_ids: Iterable[Optional[str]]) -> dict[str, str]:
    return _fetch_labels(conn, "tasks", "title", task_ids)


def fetch_category_names(
    conn: sqlite3.Connection, category_ids: Iterable[Optional[str]]
) -> dict[str, str]:
    return _fetch_labels(conn, "time_categories", "name", category_ids)


def _fetch_labels(
    conn: sqlite3.Connection, table: str, column: str, ids: Iterable[Optional[str]]
) -> dict[str, str]:
    wanted = sorted({value for value in ids if value})
    if not wanted:
        return {}
    placeholders = ", ".join("?" for _ in wanted)
    rows = conn.execute(
        f"SELECT id, {column} AS label FROM {table} WHERE id IN ({placeholders})",
        wanted,
    ).fetchall()
    return {row["id"]: row["label"] for row in rows}
