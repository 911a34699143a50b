"""Configuration models and helpers for the timer engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(slots=True)
class TimerSettings:
    """Runtime configuration shared by the service, projector and client."""

    tick_interval: timedelta = timedelta(seconds=1)
    poll_interval: timedelta = timedelta(seconds=30)
    request_timeout: timedelta = timedelta(seconds=10)
    default_activity_limit: int = 100
    max_activity_limit: int = 500

    @classmethod
    def from_intervals(
        cls,
        poll_seconds: float,
        tick_seconds: float = 1.0,
        timeout_seconds: float | None = None,
        activity_limit: int | None = None,
    ) -> "TimerSettings":
        timeout = timeout_seconds if timeout_seconds is not None else max(poll_seconds / 3, 5.0)
        limit = activity_limit if activity_limit is not None else 100
        return cls(
            tick_interval=timedelta(seconds=tick_seconds),
            poll_interval=timedelta(seconds=poll_seconds),
            request_timeout=timedelta(seconds=timeout),
            default_activity_limit=limit,
            max_activity_limit=max(limit, 500),
        )
