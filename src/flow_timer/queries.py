"""Read-side queries: statistics and activity history with stale fallback."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Hashable, Optional, Union

from .activity_log import ActivityLogStore
from .clock import Clock, SystemClock
from .config import TimerSettings
from .db import (
    database_connection,
    fetch_category_names,
    fetch_task_titles,
    fetch_time_entries,
    storage_guard,
)
from .errors import StorageError
from .models import ActivitiesResult, StatsSnapshot
from .sessions import reconstruct_sessions
from .stats import compute_stats, day_bounds, day_of

logger = logging.getLogger(__name__)

CACHE_SIZE = 256


class TimerQueries:
    """Computes stats and sessions on demand.

    The last good result per owner and range is kept; when the store fails
    that result is returned flagged ``stale`` instead of failing the read.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[TimerSettings] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self._clock = clock or SystemClock()
        self._settings = settings or TimerSettings()
        self._lock = threading.Lock()
        self._cache: OrderedDict[Hashable, Union[StatsSnapshot, ActivitiesResult]] = OrderedDict()

    def today(self) -> date:
        return day_of(self._clock.now())

    def stats(
        self, owner_id: str, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> StatsSnapshot:
        end_date = end_date or self.today()
        start_date = start_date or end_date.replace(day=1)
        if end_date < start_date:
            raise ValueError("end_date must be on or after start_date")
        key = ("stats", owner_id, start_date, end_date)
        try:
            snapshot = self._load_stats(owner_id, start_date, end_date)
        except StorageError as exc:
            return self._fallback(key, exc)
        self._remember(key, snapshot)
        return snapshot

    def activities(
        self,
        owner_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> ActivitiesResult:
        # Either bound defaults to today.
        start_date = start_date or self.today()
        end_date = end_date or self.today()
        if end_date < start_date:
            raise ValueError("end_date must be on or after start_date")
        limit = self._settings.default_activity_limit if limit is None else limit
        if limit < 1:
            raise ValueError("limit must be positive")
        limit = min(limit, self._settings.max_activity_limit)
        key = ("activities", owner_id, start_date, end_date, limit)
        try:
            result = self._load_activities(owner_id, start_date, end_date, limit)
        except StorageError as exc:
            return self._fallback(key, exc)
        self._remember(key, result)
        return result

    def _load_stats(self, owner_id: str, start_date: date, end_date: date) -> StatsSnapshot:
        start, end = day_bounds(start_date, end_date)
        with database_connection(self.db_path) as conn, storage_guard("stats query"):
            entries = fetch_time_entries(conn, owner_id, start, end)
            task_titles = fetch_task_titles(conn, (e.task_id for e in entries))
            category_names = fetch_category_names(conn, (e.category_id for e in entries))
        return compute_stats(
            entries,
            start_date,
            end_date,
            today=self.today(),
            task_titles=task_titles,
            category_names=category_names,
        )

    def _load_activities(
        self, owner_id: str, start_date: date, end_date: date, limit: int
    ) -> ActivitiesResult:
        start, end = day_bounds(start_date, end_date)
        with database_connection(self.db_path) as conn:
            events = ActivityLogStore(conn).query_by_date_range(owner_id, start, end, limit)
            with storage_guard("activities query"):
                entries = fetch_time_entries(conn, owner_id, start, end)
                task_titles = fetch_task_titles(conn, (e.task_id for e in entries))
                category_names = fetch_category_names(conn, (e.category_id for e in entries))
        logger.debug(
            "Loaded %d events and %d entries for owner %s", len(events), len(entries), owner_id
        )
        return ActivitiesResult(
            start_date=start_date,
            end_date=end_date,
            activities=events,
            sessions=reconstruct_sessions(events, entries),
            time_entries=entries,
            task_titles=task_titles,
            category_names=category_names,
        )

    def _remember(self, key: Hashable, value: Union[StatsSnapshot, ActivitiesResult]) -> None:
        with self._lock:
            self._cache[key] = value
            self._cache.move_to_end(key)
            while len(self._cache) > CACHE_SIZE:
                self._cache.popitem(last=False)

    def _fallback(self, key: Hashable, error: StorageError):
        with self._lock:
            cached = self._cache.get(key)
        if cached is None:
            raise error
        logger.warning("Serving stale %s result for owner %s", key[0], key[1])
        return replace(cached, stale=True)
