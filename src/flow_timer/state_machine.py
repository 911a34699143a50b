"""Timer state machine: Idle -> Running <-> Paused -> (Stop) -> Idle."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .activity_log import ActivityLogStore
from .clock import Clock, SystemClock, whole_seconds
from .db import (
    database_connection,
    delete_active_timer,
    fetch_active_timer,
    fetch_category_names,
    fetch_task_titles,
    insert_active_timer,
    insert_time_entry,
    save_pause_state,
    storage_guard,
    transaction,
)
from .errors import ConflictError, InvalidStateError, NotFoundError
from .locking import OwnerLocks
from .models import (
    UNKNOWN_CATEGORY_LABEL,
    UNKNOWN_TASK_LABEL,
    ActiveTimer,
    ActivityEvent,
    ResumeResult,
    TimeEntry,
    TimerAction,
    TimerStatus,
)
from .signals import RefreshSignal

logger = logging.getLogger(__name__)

DEFAULT_PAUSE_REASON = "No reason provided"


def new_id() -> str:
    return str(uuid.uuid4())


class TimerStateMachine:
    """Owns the one-active-timer-per-owner invariant.

    Every transition runs under the owner's lock and inside one SQLite
    transaction, so the event, the active-timer row and (on stop) the time
    entry are committed together or not at all.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        clock: Optional[Clock] = None,
        locks: Optional[OwnerLocks] = None,
        refresh: Optional[RefreshSignal] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self._clock = clock or SystemClock()
        self._locks = locks or OwnerLocks()
        self.refresh = refresh or RefreshSignal()

    @property
    def clock(self) -> Clock:
        return self._clock

    def start(
        self,
        owner_id: str,
        task_id: Optional[str] = None,
        description: Optional[str] = None,
        is_break: bool = False,
        category_id: Optional[str] = None,
    ) -> ActiveTimer:
        with self._locks.hold(owner_id), database_connection(self.db_path) as conn:
            with transaction(conn):
                existing = fetch_active_timer(conn, owner_id)
                if existing is not None:
                    raise ConflictError(
                        f"Owner {owner_id} already has an active timer ({existing.id}); "
                        "stop it before starting a new one."
                    )
                now = self._clock.now()
                timer = ActiveTimer(
                    id=new_id(),
                    owner_id=owner_id,
                    start_time=now,
                    is_break=is_break,
                    task_id=task_id,
                    category_id=category_id,
                    description=description,
                )
                try:
                    insert_active_timer(conn, timer)
                except sqlite3.IntegrityError as exc:
                    raise ConflictError(f"Owner {owner_id} already has an active timer") from exc
                self._record(
                    conn,
                    timer,
                    TimerAction.STARTED,
                    now,
                    taskId=task_id,
                    categoryId=category_id,
                    description=description,
                    isBreak=is_break,
                    startTime=now.isoformat(),
                )
        logger.info("Timer %s started for owner %s (break=%s)", timer.id, owner_id, is_break)
        self._notify()
        return timer

    def pause(self, owner_id: str, reason: Optional[str] = None) -> ActiveTimer:
        with self._locks.hold(owner_id), database_connection(self.db_path) as conn:
            with transaction(conn):
                timer = self._require_timer(conn, owner_id, "pause")
                if timer.is_paused:
                    raise InvalidStateError(f"Timer {timer.id} is already paused")
                now = self._clock.now()
                timer.is_paused = True
                timer.paused_at = now
                timer.pause_reason = reason or DEFAULT_PAUSE_REASON
                save_pause_state(conn, timer)
                self._record(
                    conn,
                    timer,
                    TimerAction.PAUSED,
                    now,
                    reason=timer.pause_reason,
                    pausedAt=now.isoformat(),
                )
        logger.info("Timer %s paused for owner %s: %s", timer.id, owner_id, timer.pause_reason)
        self._notify()
        return timer

    def resume(self, owner_id: str) -> ResumeResult:
        with self._locks.hold(owner_id), database_connection(self.db_path) as conn:
            with transaction(conn):
                timer = self._require_timer(conn, owner_id, "resume")
                if not timer.is_paused:
                    raise InvalidStateError(f"Timer {timer.id} is not paused")
                now = self._clock.now()
                paused_duration = timer.current_pause_duration(now)
                timer.total_paused_duration += paused_duration
                timer.is_paused = False
                timer.paused_at = None
                timer.pause_reason = None
                save_pause_state(conn, timer)
                self._record(
                    conn,
                    timer,
                    TimerAction.RESUMED,
                    now,
                    pausedDuration=paused_duration,
                    totalPausedDuration=timer.total_paused_duration,
                )
        logger.info(
            "Timer %s resumed for owner %s after %ss (total paused %ss)",
            timer.id,
            owner_id,
            paused_duration,
            timer.total_paused_duration,
        )
        self._notify()
        return ResumeResult(
            paused_duration=paused_duration,
            total_paused_duration=timer.total_paused_duration,
        )

    def stop(self, owner_id: str, description: Optional[str] = None) -> TimeEntry:
        with self._locks.hold(owner_id), database_connection(self.db_path) as conn:
            with transaction(conn):
                timer = self._require_timer(conn, owner_id, "stop")
                now = self._clock.now()
                # An open pause ends now and counts as paused time.
                open_pause = timer.current_pause_duration(now)
                total_paused = timer.total_paused_duration + open_pause
                wall = whole_seconds(timer.start_time, now)
                entry = TimeEntry(
                    id=new_id(),
                    owner_id=owner_id,
                    start_time=timer.start_time,
                    end_time=now,
                    duration=max(0, wall - total_paused),
                    is_break=timer.is_break,
                    task_id=timer.task_id,
                    category_id=timer.category_id,
                    description=description or timer.description,
                    total_paused_duration=total_paused,
                )
                insert_time_entry(conn, entry)
                self._record(
                    conn,
                    timer,
                    TimerAction.STOPPED,
                    now,
                    timeEntryId=entry.id,
                    totalDuration=entry.duration,
                    pausedDuration=total_paused,
                    openPauseDuration=open_pause,
                    wallDuration=wall,
                    taskId=timer.task_id,
                )
                delete_active_timer(conn, owner_id, timer.id)
        logger.info(
            "Timer %s stopped for owner %s: entry %s, %ss worked, %ss paused",
            timer.id,
            owner_id,
            entry.id,
            entry.duration,
            total_paused,
        )
        self._notify()
        return entry

    def get_status(self, owner_id: str) -> TimerStatus:
        with database_connection(self.db_path) as conn, storage_guard("status read"):
            timer = fetch_active_timer(conn, owner_id)
            if timer is None:
                return TimerStatus(has_active_timer=False, server_time=self._clock.now())
            task_title, category_name = _labels(conn, timer.task_id, timer.category_id)
        now = self._clock.now()
        return TimerStatus(
            has_active_timer=True,
            server_time=now,
            timer=timer,
            elapsed_seconds=timer.elapsed_seconds(now),
            current_pause_duration=timer.current_pause_duration(now),
            task_title=task_title,
            category_name=category_name,
        )

    def display_labels(
        self, task_id: Optional[str], category_id: Optional[str]
    ) -> tuple[Optional[str], Optional[str]]:
        """Task title and category name, with placeholders for unknown ids."""
        with database_connection(self.db_path) as conn, storage_guard("label lookup"):
            return _labels(conn, task_id, category_id)

    def _require_timer(self, conn: sqlite3.Connection, owner_id: str, operation: str) -> ActiveTimer:
        timer = fetch_active_timer(conn, owner_id)
        if timer is None:
            raise NotFoundError(f"Cannot {operation}: owner {owner_id} has no active timer")
        return timer

    def _record(
        self,
        conn: sqlite3.Connection,
        timer: ActiveTimer,
        action: TimerAction,
        now: datetime,
        **details: Any,
    ) -> ActivityEvent:
        event = ActivityEvent(
            id=new_id(),
            owner_id=timer.owner_id,
            timer_id=timer.id,
            action=action,
            created_at=now,
            details=details,
        )
        return ActivityLogStore(conn).append(event)

    def _notify(self) -> None:
        self.refresh.emit()


def _labels(
    conn: sqlite3.Connection, task_id: Optional[str], category_id: Optional[str]
) -> tuple[Optional[str], Optional[str]]:
    task_titles = fetch_task_titles(conn, [task_id])
    category_names = fetch_category_names(conn, [category_id])
    return (
        _label(task_id, task_titles, UNKNOWN_TASK_LABEL),
        _label(category_id, category_names, UNKNOWN_CATEGORY_LABEL),
    )


def _label(key: Optional[str], labels: dict[str, str], placeholder: str) -> Optional[str]:
    if not key:
        return None
    return labels.get(key, placeholder)
