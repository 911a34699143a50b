"""Domain models for timers, activity events and time entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from .clock import whole_seconds

UNKNOWN_TASK_LABEL = "Unknown task"
UNKNOWN_CATEGORY_LABEL = "Unknown category"


class TimerAction(str, Enum):
    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    STOPPED = "stopped"


# Timeline order for events that share a timestamp.
ACTION_RANK: dict[TimerAction, int] = {
    TimerAction.STARTED: 0,
    TimerAction.PAUSED: 1,
    TimerAction.RESUMED: 2,
    TimerAction.STOPPED: 3,
}


@dataclass(slots=True)
class ActiveTimer:
    """The single in-flight timer of an owner."""

    id: str
    owner_id: str
    start_time: datetime
    is_break: bool = False
    task_id: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    pause_reason: Optional[str] = None
    total_paused_duration: int = 0

    def current_pause_duration(self, now: datetime) -> int:
        if not self.is_paused or self.paused_at is None:
            return 0
        return max(0, whole_seconds(self.paused_at, now))

    def elapsed_seconds(self, now: datetime) -> int:
        """Worked seconds so far; frozen at the pause instant while paused."""
        reference = self.paused_at if self.is_paused and self.paused_at else now
        return max(0, whole_seconds(self.start_time, reference) - self.total_paused_duration)


@dataclass(slots=True, frozen=True)
class ActivityEvent:
    """Immutable record of one timer transition."""

    id: str
    owner_id: str
    timer_id: str
    action: TimerAction
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def time_entry_id(self) -> Optional[str]:
        if self.action is not TimerAction.STOPPED:
            return None
        return self.details.get("timeEntryId")


@dataclass(slots=True, frozen=True)
class TimeEntry:
    """A completed span of work or break."""

    id: str
    owner_id: str
    start_time: datetime
    end_time: datetime
    duration: int
    is_break: bool = False
    task_id: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    total_paused_duration: int = 0


@dataclass(slots=True)
class TimerStatus:
    """Snapshot returned by GetStatus."""

    has_active_timer: bool
    server_time: datetime
    timer: Optional[ActiveTimer] = None
    elapsed_seconds: int = 0
    current_pause_duration: int = 0
    task_title: Optional[str] = None
    category_name: Optional[str] = None

    @property
    def is_paused(self) -> bool:
        return bool(self.timer and self.timer.is_paused)

    @property
    def is_running(self) -> bool:
        return bool(self.timer and not self.timer.is_paused)


@dataclass(slots=True)
class ResumeResult:
    paused_duration: int
    total_paused_duration: int


@dataclass(slots=True)
class TimerSession:
    """Activity events of one timer lifecycle plus the entry it produced."""

    timer_id: str
    activities: list[ActivityEvent]
    time_entry: Optional[TimeEntry] = None

    @property
    def latest_activity_at(self) -> datetime:
        return max(event.created_at for event in self.activities)

    @property
    def started_at(self) -> Optional[datetime]:
        for event in self.activities:
            if event.action is TimerAction.STARTED:
                return event.created_at
        return None

    @property
    def is_complete(self) -> bool:
        return any(event.action is TimerAction.STOPPED for event in self.activities)


@dataclass(slots=True)
class Category:
    id: str
    name: str
    color: str = "#64748b"
    is_billable: bool = False


@dataclass(slots=True)
class Task:
    id: str
    title: str


@dataclass(slots=True)
class BreakdownItem:
    key: Optional[str]
    label: str
    seconds: int
    percentage: int = 0


@dataclass(slots=True)
class TrendBucket:
    day: date
    label: str
    weekday_index: int
    seconds: int = 0


@dataclass(slots=True)
class StatsSnapshot:
    """Aggregates over the time entries of a date range."""

    start_date: date
    end_date: date
    total_seconds: int
    productive_seconds: int
    break_seconds: int
    efficiency: int
    task_breakdown: list[BreakdownItem]
    category_breakdown: list[BreakdownItem]
    weekly_trend: list[TrendBucket]
    today_seconds: int = 0
    week_seconds: int = 0
    total_entries: int = 0
    daily_average_hours: float = 0.0
    average_session_minutes: float = 0.0
    longest_session_minutes: float = 0.0
    shortest_session_minutes: float = 0.0
    stale: bool = False

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600.0

    @property
    def productive_hours(self) -> float:
        return self.productive_seconds / 3600.0

    @property
    def break_hours(self) -> float:
        return self.break_seconds / 3600.0

    @property
    def today_hours(self) -> float:
        return self.today_seconds / 3600.0

    @property
    def week_hours(self) -> float:
        return self.week_seconds / 3600.0


@dataclass(slots=True)
class ActivitiesResult:
    start_date: date
    end_date: date
    activities: list[ActivityEvent]
    sessions: list[TimerSession]
    time_entries: list[TimeEntry]
    stale: bool = False
    task_titles: dict[str, str] = field(default_factory=dict)
    category_names: dict[str, str] = field(default_factory=dict)

    def task_title(self, task_id: Optional[str]) -> Optional[str]:
        if not task_id:
            return None
        return self.task_titles.get(task_id, UNKNOWN_TASK_LABEL)

    def category_name(self, category_id: Optional[str]) -> Optional[str]:
        if not category_id:
            return None
        return self.category_names.get(category_id, UNKNOWN_CATEGORY_LABEL)
