"""Append-only store for timer transition events."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from .db import fetch_activity_events, fetch_timer_events, insert_activity_event
from .errors import StorageError
from .models import ActivityEvent

logger = logging.getLogger(__name__)


class ActivityLogStore:
    """Activity events keyed by ``(owner_id, timer_id)``.

    The store exposes no update or delete; corrections are new events.
    The connection is supplied by the caller so an append can share the
    caller's transaction (the stop transition writes its time entry and its
    ``stopped`` event together).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def append(self, event: ActivityEvent) -> ActivityEvent:
        try:
            insert_activity_event(self._conn, event)
        except sqlite3.Error as exc:
            logger.exception(
                "Failed to append %s event for timer %s", event.action.value, event.timer_id
            )
            raise StorageError(f"Could not append activity event {event.id}: {exc}") from exc
        logger.debug(
            "Appended %s event %s (owner=%s timer=%s)",
            event.action.value,
            event.id,
            event.owner_id,
            event.timer_id,
        )
        return event

    def query_by_date_range(
        self, owner_id: str, start: datetime, end: datetime, limit: int
    ) -> list[ActivityEvent]:
        """Events created in ``[start, end)``, ordered by ``created_at`` ascending."""
        if limit <= 0:
            return []
        try:
            return fetch_activity_events(self._conn, owner_id, start, end, limit)
        except sqlite3.Error as exc:
            logger.exception("Failed to query activity log for owner %s", owner_id)
            raise StorageError(f"Could not read activity log: {exc}") from exc

    def timer_history(self, owner_id: str, timer_id: str) -> list[ActivityEvent]:
        try:
            return fetch_timer_events(self._conn, owner_id, timer_id)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not read history of timer {timer_id}: {exc}") from exc
