"""Daily, weekly and per-category rollups of time entries."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Mapping, Optional

from .models import (
    UNKNOWN_CATEGORY_LABEL,
    UNKNOWN_TASK_LABEL,
    BreakdownItem,
    StatsSnapshot,
    TimeEntry,
    TrendBucket,
)

WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
NO_TASK_LABEL = "No task"
WORK_LABEL = "Work"
BREAK_LABEL = "Break"


def day_of(value: datetime) -> date:
    return value.astimezone(timezone.utc).date()


def day_bounds(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """UTC instants covering the inclusive day range as ``[start, end)``."""
    start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def apportion_percentages(values: list[int]) -> list[int]:
    """Integer percentages of ``values`` that sum to exactly 100.

    Uses largest-remainder rounding; every share is 0 when the total is 0.
    """
    total = sum(values)
    if total <= 0:
        return [0] * len(values)
    shares = [value * 100 // total for value in values]
    remainders = [value * 100 % total for value in values]
    missing = 100 - sum(shares)
    order = sorted(range(len(values)), key=lambda i: (remainders[i], values[i]), reverse=True)
    for index in order[:missing]:
        shares[index] += 1
    return shares


def efficiency_of(productive_seconds: int, total_seconds: int) -> int:
    if total_seconds <= 0:
        return 0
    # Half-up rounding of productive / total * 100.
    return (productive_seconds * 200 + total_seconds) // (2 * total_seconds)


def compute_stats(
    entries: Iterable[TimeEntry],
    start_date: date,
    end_date: date,
    *,
    today: Optional[date] = None,
    task_titles: Optional[Mapping[str, str]] = None,
    category_names: Optional[Mapping[str, str]] = None,
) -> StatsSnapshot:
    if end_date < start_date:
        raise ValueError("end_date must be on or after start_date")
    entries = list(entries)
    task_titles = task_titles or {}
    category_names = category_names or {}
    today = today or end_date

    total = sum(entry.duration for entry in entries)
    breaks = sum(entry.duration for entry in entries if entry.is_break)
    productive = total - breaks
    durations = [entry.duration for entry in entries]
    days_in_range = (end_date - start_date).days + 1
    week_start = today - timedelta(days=today.weekday())

    return StatsSnapshot(
        start_date=start_date,
        end_date=end_date,
        total_seconds=total,
        productive_seconds=productive,
        break_seconds=breaks,
        efficiency=efficiency_of(productive, total),
        task_breakdown=task_breakdown(entries, task_titles),
        category_breakdown=category_breakdown(entries, category_names),
        weekly_trend=weekly_trend(entries, start_date, end_date),
        today_seconds=sum(e.duration for e in entries if day_of(e.start_time) == today),
        # Monday of the current week through the end of the range.
        week_seconds=sum(e.duration for e in entries if day_of(e.start_time) >= week_start),
        total_entries=len(entries),
        daily_average_hours=total / 3600.0 / days_in_range,
        average_session_minutes=(total / 60.0 / len(entries)) if entries else 0.0,
        longest_session_minutes=max(durations, default=0) / 60.0,
        shortest_session_minutes=min(durations, default=0) / 60.0,
    )


def task_breakdown(
    entries: Iterable[TimeEntry], task_titles: Mapping[str, str]
) -> list[BreakdownItem]:
    totals: defaultdict[Optional[str], int] = defaultdict(int)
    for entry in entries:
        totals[entry.task_id or None] += entry.duration
    items = [
        BreakdownItem(
            key=task_id,
            label=task_titles.get(task_id, UNKNOWN_TASK_LABEL) if task_id else NO_TASK_LABEL,
            seconds=seconds,
        )
        for task_id, seconds in totals.items()
    ]
    return _finish_breakdown(items)


def category_breakdown(
    entries: Iterable[TimeEntry], category_names: Mapping[str, str]
) -> list[BreakdownItem]:
    totals: defaultdict[tuple[Optional[str], str], int] = defaultdict(int)
    for entry in entries:
        if entry.category_id:
            label = category_names.get(entry.category_id, UNKNOWN_CATEGORY_LABEL)
            totals[(entry.category_id, label)] += entry.duration
        else:
            totals[(None, BREAK_LABEL if entry.is_break else WORK_LABEL)] += entry.duration
    items = [
        BreakdownItem(key=key, label=label, seconds=seconds)
        for (key, label), seconds in totals.items()
    ]
    return _finish_breakdown(items)


def _finish_breakdown(items: list[BreakdownItem]) -> list[BreakdownItem]:
    items.sort(key=lambda item: (-item.seconds, item.label.casefold(), item.key or ""))
    for item, share in zip(items, apportion_percentages([item.seconds for item in items])):
        item.percentage = share
    return items


def weekly_trend(
    entries: Iterable[TimeEntry], start_date: date, end_date: date
) -> list[TrendBucket]:
    """One bucket per calendar day of the inclusive range, in date order."""
    buckets: dict[date, TrendBucket] = {}
    current = start_date
    while current <= end_date:
        weekday = current.weekday()
        buckets[current] = TrendBucket(
            day=current, label=WEEKDAY_LABELS[weekday], weekday_index=weekday
        )
        current += timedelta(days=1)
    for entry in entries:
        bucket = buckets.get(day_of(entry.start_time))
        if bucket is not None:
            bucket.seconds += entry.duration
    return list(buckets.values())
