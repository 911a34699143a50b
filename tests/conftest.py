"""Shared fixtures: a hand-driven clock, a throwaway SQLite database and an API client."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from flow_timer.config import TimerSettings
from flow_timer.state_machine import TimerStateMachine
from flow_timer.webapp import create_app

# A Monday.
T0 = datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.current += timedelta(seconds=seconds, **kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "timer.sqlite3"


@pytest.fixture
def machine(db_path, clock) -> TimerStateMachine:
    return TimerStateMachine(db_path, clock=clock)


@pytest.fixture
def api(db_path, clock) -> TestClient:
    return TestClient(create_app(db_path=db_path, settings=TimerSettings(), clock=clock))
