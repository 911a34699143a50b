"""JSON payload shaping for the HTTP API and its client."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from .models import (
    ActiveTimer,
    ActivitiesResult,
    ActivityEvent,
    BreakdownItem,
    Category,
    StatsSnapshot,
    Task,
    TimeEntry,
    TimerSession,
    TimerStatus,
    TrendBucket,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _hours(seconds: int) -> float:
    return round(seconds / 3600.0, 2)


def timer_payload(
    timer: ActiveTimer,
    now: datetime,
    *,
    task_title: Optional[str] = None,
    category_name: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": timer.id,
        "ownerId": timer.owner_id,
        "taskId": timer.task_id,
        "taskTitle": task_title,
        "categoryId": timer.category_id,
        "categoryName": category_name,
        "startTime": _iso(timer.start_time),
        "description": timer.description,
        "isBreak": timer.is_break,
        "isPaused": timer.is_paused,
        "pausedAt": _iso(timer.paused_at),
        "pauseReason": timer.pause_reason,
        "totalPausedDuration": timer.total_paused_duration,
        "currentPauseDuration": timer.current_pause_duration(now),
        "elapsedSeconds": timer.elapsed_seconds(now),
    }


def timer_from_payload(data: Dict[str, Any]) -> ActiveTimer:
    return ActiveTimer(
        id=data["id"],
        owner_id=data.get("ownerId") or "",
        start_time=datetime.fromisoformat(data["startTime"]),
        is_break=bool(data.get("isBreak")),
        task_id=data.get("taskId"),
        category_id=data.get("categoryId"),
        description=data.get("description"),
        is_paused=bool(data.get("isPaused")),
        paused_at=_parse_iso(data.get("pausedAt")),
        pause_reason=data.get("pauseReason"),
        total_paused_duration=int(data.get("totalPausedDuration") or 0),
    )


def status_payload(status: TimerStatus) -> Dict[str, Any]:
    timer = None
    if status.timer is not None:
        timer = timer_payload(
            status.timer,
            status.server_time,
            task_title=status.task_title,
            category_name=status.category_name,
        )
    return {
        "hasActiveTimer": status.has_active_timer,
        "serverTime": _iso(status.server_time),
        "timer": timer,
    }


def status_from_payload(payload: Dict[str, Any]) -> TimerStatus:
    """Rebuild a status snapshot from a ``status_payload`` body."""
    server_time = _parse_iso(payload.get("serverTime")) or datetime.now().astimezone()
    data = payload.get("timer")
    if not payload.get("hasActiveTimer") or not data:
        return TimerStatus(has_active_timer=False, server_time=server_time)
    return TimerStatus(
        has_active_timer=True,
        server_time=server_time,
        timer=timer_from_payload(data),
        elapsed_seconds=int(data.get("elapsedSeconds") or 0),
        current_pause_duration=int(data.get("currentPauseDuration") or 0),
        task_title=data.get("taskTitle"),
        category_name=data.get("categoryName"),
    )


def entry_payload(
    entry: TimeEntry,
    *,
    task_title: Optional[str] = None,
    category_name: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "taskId": entry.task_id,
        "taskTitle": task_title,
        "categoryId": entry.category_id,
        "categoryName": category_name,
        "startTime": _iso(entry.start_time),
        "endTime": _iso(entry.end_time),
        "duration": entry.duration,
        "totalPausedDuration": entry.total_paused_duration,
        "description": entry.description,
        "isBreak": entry.is_break,
    }


def entry_from_payload(data: Dict[str, Any], owner_id: str) -> TimeEntry:
    return TimeEntry(
        id=data["id"],
        owner_id=owner_id,
        start_time=datetime.fromisoformat(data["startTime"]),
        end_time=datetime.fromisoformat(data["endTime"]),
        duration=int(data["duration"]),
        is_break=bool(data.get("isBreak")),
        task_id=data.get("taskId"),
        category_id=data.get("categoryId"),
        description=data.get("description"),
        total_paused_duration=int(data.get("totalPausedDuration") or 0),
    )


def stop_payload(
    entry: TimeEntry,
    *,
    task_title: Optional[str] = None,
    category_name: Optional[str] = None,
) -> Dict[str, Any]:
    payload = entry_payload(entry, task_title=task_title, category_name=category_name)
    payload["summary"] = {
        "durationMinutes": round(entry.duration / 60),
        "durationHours": _hours(entry.duration),
        "pausedDuration": entry.total_paused_duration,
    }
    return payload


def event_payload(event: ActivityEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "ownerId": event.owner_id,
        "timerId": event.timer_id,
        "action": event.action.value,
        "createdAt": _iso(event.created_at),
        "details": dict(event.details),
    }


def session_payload(session: TimerSession, result: ActivitiesResult) -> Dict[str, Any]:
    entry = session.time_entry
    return {
        "timerId": session.timer_id,
        "activities": [event_payload(event) for event in session.activities],
        "timeEntry": (
            entry_payload(
                entry,
                task_title=result.task_title(entry.task_id),
                category_name=result.category_name(entry.category_id),
            )
            if entry
            else None
        ),
    }


def activities_payload(result: ActivitiesResult) -> Dict[str, Any]:
    return {
        "activities": [event_payload(event) for event in result.activities],
        "sessions": [session_payload(session, result) for session in result.sessions],
        "timeEntries": [
            entry_payload(
                entry,
                task_title=result.task_title(entry.task_id),
                category_name=result.category_name(entry.category_id),
            )
            for entry in result.time_entries
        ],
        "dateRange": {
            "startDate": result.start_date.isoformat(),
            "endDate": result.end_date.isoformat(),
        },
        "stale": result.stale,
    }


def _breakdown_payload(item: BreakdownItem, key_name: str, label_name: str) -> Dict[str, Any]:
    return {
        key_name: item.key,
        label_name: item.label,
        "hours": _hours(item.seconds),
        "seconds": item.seconds,
        "percentage": item.percentage,
    }


def _trend_payload(bucket: TrendBucket) -> Dict[str, Any]:
    return {
        "date": bucket.day.isoformat(),
        "day": bucket.label,
        "weekdayIndex": bucket.weekday_index,
        "hours": _hours(bucket.seconds),
    }


def stats_payload(snapshot: StatsSnapshot) -> Dict[str, Any]:
    return {
        "startDate": snapshot.start_date.isoformat(),
        "endDate": snapshot.end_date.isoformat(),
        "totalHours": round(snapshot.total_hours, 2),
        "productiveHours": round(snapshot.productive_hours, 2),
        "breakHours": round(snapshot.break_hours, 2),
        "todayHours": round(snapshot.today_hours, 2),
        "weekHours": round(snapshot.week_hours, 2),
        "totalMinutes": round(snapshot.total_seconds / 60),
        "efficiency": snapshot.efficiency,
        "taskBreakdown": [
            _breakdown_payload(item, "taskId", "taskTitle") for item in snapshot.task_breakdown
        ],
        "categoryBreakdown": [
            _breakdown_payload(item, "categoryId", "categoryName")
            for item in snapshot.category_breakdown
        ],
        "weeklyTrend": [_trend_payload(bucket) for bucket in snapshot.weekly_trend],
        "dailyAverage": round(snapshot.daily_average_hours, 2),
        "summary": {
            "totalEntries": snapshot.total_entries,
            "averageSessionMinutes": round(snapshot.average_session_minutes, 2),
            "longestSessionMinutes": round(snapshot.longest_session_minutes, 2),
            "shortestSessionMinutes": round(snapshot.shortest_session_minutes, 2),
        },
        "stale": snapshot.stale,
    }


def category_payload(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "isBillable": category.is_billable,
    }


def task_payload(task: Task) -> Dict[str, Any]:
    return {"id": task.id, "title": task.title}
