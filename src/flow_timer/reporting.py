"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from typing import Optional

from .models import ActivitiesResult, StatsSnapshot, TimerAction, TimerSession, TimerStatus

ACTION_VERBS = {
    TimerAction.STARTED: "Started",
    TimerAction.PAUSED: "Paused",
    TimerAction.RESUMED: "Resumed",
    TimerAction.STOPPED: "Stopped",
}


class SummaryPrinter:
    """Render human-readable timer summaries in the console."""

    def print_status(self, status: TimerStatus) -> None:
        timer = status.timer
        if not status.has_active_timer or timer is None:
            print("No active timer.")
            return
        state = "Paused" if timer.is_paused else "Running"
        kind = "break" if timer.is_break else "work"
        print(f"{state} {kind} timer {timer.id}")
        print("-" * 40)
        print(f"Elapsed:  {format_duration(status.elapsed_seconds)}")
        if status.task_title:
            print(f"Task:     {status.task_title}")
        if status.category_name:
            print(f"Category: {status.category_name}")
        if timer.description:
            print(f"Note:     {timer.description}")
        if timer.is_paused:
            print(f"Paused:   {format_duration(status.current_pause_duration)} ({timer.pause_reason})")
        if timer.total_paused_duration:
            print(f"Breaks:   {format_duration_human(timer.total_paused_duration)}")

    def print_stats(self, snapshot: StatsSnapshot) -> None:
        print(f"Stats for {snapshot.start_date.isoformat()} to {snapshot.end_date.isoformat()}")
        if snapshot.stale:
            print("(store unavailable; showing last known figures)")
        print("-" * 40)
        print(f"Total:      {format_duration_human(snapshot.total_seconds)}")
        print(f"Productive: {format_duration_human(snapshot.productive_seconds)}")
        print(f"Breaks:     {format_duration_human(snapshot.break_seconds)}")
        print(f"Today:      {format_duration_human(snapshot.today_seconds)}")
        print(f"This week:  {format_duration_human(snapshot.week_seconds)}")
        print(f"Efficiency: {snapshot.efficiency}%")
        print(f"Entries:    {snapshot.total_entries}")

        if snapshot.task_breakdown:
            print()
            print("By task:")
            for item in snapshot.task_breakdown[:5]:
                print(f"  {item.label[:30]:<30} {format_duration_human(item.seconds):>8} {item.percentage:>3}%")

        if snapshot.category_breakdown:
            print()
            print("By category:")
            for item in snapshot.category_breakdown:
                print(f"  {item.label[:30]:<30} {format_duration_human(item.seconds):>8} {item.percentage:>3}%")

        week = snapshot.weekly_trend[-7:]
        if week:
            print()
            print("Last days:")
            for bucket in week:
                print(f"  {bucket.label} {bucket.day.isoformat()} {format_duration(bucket.seconds)}")

    def print_sessions(self, result: ActivitiesResult) -> None:
        if not result.sessions:
            print("No timer activity in the selected range.")
            return
        if result.stale:
            print("(store unavailable; showing last known sessions)")
        for session in result.sessions:
            print(self._session_header(session, result))
            for event in session.activities:
                line = f"  {event.created_at:%Y-%m-%d %H:%M:%S} {ACTION_VERBS[event.action]}"
                reason = event.details.get("reason") if event.action is TimerAction.PAUSED else None
                if reason:
                    line += f" ({reason})"
                print(line)

    def _session_header(self, session: TimerSession, result: ActivitiesResult) -> str:
        entry = session.time_entry
        if entry is None:
            suffix = "in progress" if not session.is_complete else "entry outside range"
            return f"Timer {session.timer_id[:8]} ({suffix})"
        title = result.task_title(entry.task_id) or ("Break" if entry.is_break else "Work")
        return f"Timer {session.timer_id[:8]} {title}: {format_duration_human(entry.duration)}"


def format_duration(seconds: float) -> str:
    total_seconds = max(0, int(round(seconds)))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_duration_human(seconds: Optional[float]) -> str:
    """Coarse ``"2h 5m"`` style rendering; anything under a minute is ``"< 1m"``."""
    total_minutes = max(0, int(seconds or 0)) // 60
    if total_minutes == 0:
        return "< 1m"
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"
