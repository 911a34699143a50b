"""Read-side queries and stale fallback."""

from datetime import date, timedelta

import pytest

from conftest import T0
from flow_timer.config import TimerSettings
from flow_timer.db import database_connection, insert_category, upsert_task
from flow_timer.errors import StorageError
from flow_timer.models import Category, Task
from flow_timer.queries import TimerQueries


@pytest.fixture
def queries(db_path, clock):
    return TimerQueries(db_path, clock=clock)


def record(machine, clock, seconds, **kwargs):
    machine.start("u1", **kwargs)
    clock.advance(seconds)
    return machine.stop("u1")


class TestStats:
    def test_defaults_to_month_to_date(self, machine, clock, queries):
        record(machine, clock, 600)
        snapshot = queries.stats("u1")
        assert snapshot.start_date == date(2024, 3, 1)
        assert snapshot.end_date == date(2024, 3, 4)
        assert snapshot.total_seconds == 600
        assert snapshot.today_seconds == 600
        assert len(snapshot.weekly_trend) == 4

    def test_resolves_titles_and_names(self, machine, clock, queries, db_path):
        with database_connection(db_path) as conn:
            upsert_task(conn, Task(id="t1", title="Review"))
            insert_category(conn, Category(id="c1", name="Meetings"))
        record(machine, clock, 600, task_id="t1", category_id="c1")
        snapshot = queries.stats("u1", T0.date(), T0.date())
        assert snapshot.task_breakdown[0].label == "Review"
        assert snapshot.category_breakdown[0].label == "Meetings"
        assert snapshot.category_breakdown[0].percentage == 100

    def test_running_timer_not_counted(self, machine, clock, queries):
        machine.start("u1")
        clock.advance(600)
        assert queries.stats("u1", T0.date(), T0.date()).total_seconds == 0

    def test_reversed_range(self, queries):
        with pytest.raises(ValueError):
            queries.stats("u1", date(2024, 3, 5), date(2024, 3, 4))


class TestActivities:
    def test_defaults_to_today(self, machine, clock, queries):
        entry = record(machine, clock, 60)
        result = queries.activities("u1")
        assert result.start_date == result.end_date == T0.date()
        assert [e.action.value for e in result.activities] == ["started", "stopped"]
        assert result.time_entries == [entry]
        assert result.sessions[0].time_entry == entry

    def test_limit_keeps_latest_events(self, machine, clock, queries):
        for _ in range(3):
            record(machine, clock, 60)
            clock.advance(60)
        result = queries.activities("u1", limit=2)
        assert [e.action.value for e in result.activities] == ["started", "stopped"]
        assert len(result.sessions) == 1

    def test_limit_is_capped(self, db_path, clock):
        settings = TimerSettings(default_activity_limit=2, max_activity_limit=3)
        queries = TimerQueries(db_path, clock=clock, settings=settings)
        result = queries.activities("u1", limit=1000)
        assert result.activities == []

    def test_invalid_limit(self, queries):
        with pytest.raises(ValueError):
            queries.activities("u1", limit=0)

    def test_other_days_excluded(self, machine, clock, queries):
        record(machine, clock, 60)
        clock.advance(days=1)
        result = queries.activities("u1", T0.date() + timedelta(days=1))
        assert result.activities == []
        assert result.sessions == []

    def test_start_date_alone_runs_through_today(self, machine, clock, queries):
        clock.advance(days=2)
        record(machine, clock, 60)
        result = queries.activities("u1", T0.date())
        assert result.start_date == T0.date()
        assert result.end_date == T0.date() + timedelta(days=2)
        assert len(result.activities) == 2
        assert len(result.sessions) == 1


class TestStaleFallback:
    def test_serves_last_good_stats(self, machine, clock, queries, tmp_path):
        record(machine, clock, 600)
        fresh = queries.stats("u1", T0.date(), T0.date())
        queries.db_path = tmp_path
        stale = queries.stats("u1", T0.date(), T0.date())
        assert stale.stale is True
        assert stale.total_seconds == fresh.total_seconds
        assert fresh.stale is False

    def test_serves_last_good_activities(self, machine, clock, queries, tmp_path):
        record(machine, clock, 60)
        queries.activities("u1")
        queries.db_path = tmp_path
        result = queries.activities("u1")
        assert result.stale is True
        assert len(result.sessions) == 1

    def test_raises_without_cache(self, queries, tmp_path):
        queries.db_path = tmp_path
        with pytest.raises(StorageError):
            queries.stats("u1")
