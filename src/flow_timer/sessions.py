"""Rebuild per-timer sessions from the activity log."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from .models import ACTION_RANK, ActivityEvent, TimeEntry, TimerAction, TimerSession


def timeline_key(event: ActivityEvent) -> tuple:
    return (event.created_at, ACTION_RANK[event.action])


def reconstruct_sessions(
    events: Iterable[ActivityEvent], entries: Iterable[TimeEntry]
) -> list[TimerSession]:
    """Group events by timer id, most recently active timer first.

    Events inside each session are put in timeline order regardless of the
    order they were delivered in. A session gets the time entry referenced by
    its ``stopped`` event when that entry is among ``entries``; sessions of
    timers that are still running (or were abandoned) have no entry.
    """
    grouped: dict[str, list[ActivityEvent]] = defaultdict(list)
    for event in events:
        grouped[event.timer_id].append(event)

    entries_by_id = {entry.id: entry for entry in entries}
    sessions: list[TimerSession] = []
    for timer_id, timer_events in grouped.items():
        ordered = sorted(timer_events, key=timeline_key)
        sessions.append(
            TimerSession(
                timer_id=timer_id,
                activities=ordered,
                time_entry=_entry_for(ordered, entries_by_id),
            )
        )

    sessions.sort(key=lambda session: session.timer_id)
    sessions.sort(key=lambda session: session.latest_activity_at, reverse=True)
    return sessions


def _entry_for(
    ordered: list[ActivityEvent], entries_by_id: dict[str, TimeEntry]
) -> TimeEntry | None:
    for event in reversed(ordered):
        if event.action is TimerAction.STOPPED:
            entry_id = event.time_entry_id
            return entries_by_id.get(entry_id) if entry_id else None
    return None


def is_well_formed(session: TimerSession) -> bool:
    """True when a stopped session reads started, (paused, resumed)*, stopped."""
    actions = [event.action for event in session.activities]
    if not actions or actions[0] is not TimerAction.STARTED:
        return False
    if actions.count(TimerAction.STARTED) != 1:
        return False
    if TimerAction.STOPPED in actions:
        if actions.count(TimerAction.STOPPED) != 1 or actions[-1] is not TimerAction.STOPPED:
            return False
        middle = actions[1:-1]
    else:
        middle = actions[1:]
    expected = TimerAction.PAUSED
    for action in middle:
        if action is not expected:
            return False
        expected = TimerAction.RESUMED if expected is TimerAction.PAUSED else TimerAction.PAUSED
    return True
