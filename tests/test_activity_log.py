"""Append-only activity log store."""

import sqlite3
from datetime import timedelta

import pytest

from conftest import T0
from flow_timer.activity_log import ActivityLogStore
from flow_timer.db import database_connection
from flow_timer.errors import StorageError
from flow_timer.models import ActivityEvent, TimerAction


def make_event(event_id, offset_seconds, action=TimerAction.STARTED, timer_id="t1", owner_id="u1", **details):
    return ActivityEvent(
        id=event_id,
        owner_id=owner_id,
        timer_id=timer_id,
        action=action,
        created_at=T0 + timedelta(seconds=offset_seconds),
        details=details,
    )


@pytest.fixture
def conn(db_path):
    with database_connection(db_path) as connection:
        yield connection


class TestAppend:
    def test_round_trip_preserves_details(self, conn):
        store = ActivityLogStore(conn)
        event = make_event("e1", 0, TimerAction.STOPPED, timeEntryId="x", totalDuration=5)
        store.append(event)
        [stored] = store.timer_history("u1", "t1")
        assert stored == event
        assert stored.time_entry_id == "x"

    def test_duplicate_id_raises_storage_error(self, conn):
        store = ActivityLogStore(conn)
        store.append(make_event("e1", 0))
        with pytest.raises(StorageError):
            store.append(make_event("e1", 5))

    def test_rows_cannot_be_updated(self, conn):
        ActivityLogStore(conn).append(make_event("e1", 0))
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("UPDATE activity_log SET action = 'stopped' WHERE id = 'e1'")

    def test_rows_cannot_be_deleted(self, conn):
        ActivityLogStore(conn).append(make_event("e1", 0))
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("DELETE FROM activity_log WHERE id = 'e1'")


class TestQueryByDateRange:
    def test_ordered_ascending(self, conn):
        store = ActivityLogStore(conn)
        for event_id, offset in [("c", 30), ("a", 10), ("b", 20)]:
            store.append(make_event(event_id, offset))
        events = store.query_by_date_range("u1", T0, T0 + timedelta(hours=1), 10)
        assert [event.id for event in events] == ["a", "b", "c"]

    def test_range_is_half_open(self, conn):
        store = ActivityLogStore(conn)
        store.append(make_event("before", -1))
        store.append(make_event("first", 0))
        store.append(make_event("last", 59))
        store.append(make_event("after", 60))
        events = store.query_by_date_range("u1", T0, T0 + timedelta(seconds=60), 10)
        assert [event.id for event in events] == ["first", "last"]

    def test_limit_keeps_most_recent(self, conn):
        store = ActivityLogStore(conn)
        for index in range(5):
            store.append(make_event(f"e{index}", index))
        events = store.query_by_date_range("u1", T0, T0 + timedelta(hours=1), 2)
        assert [event.id for event in events] == ["e3", "e4"]

    def test_non_positive_limit(self, conn):
        store = ActivityLogStore(conn)
        store.append(make_event("e1", 0))
        assert store.query_by_date_range("u1", T0, T0 + timedelta(hours=1), 0) == []

    def test_owners_are_isolated(self, conn):
        store = ActivityLogStore(conn)
        store.append(make_event("mine", 0))
        store.append(make_event("theirs", 1, owner_id="u2"))
        events = store.query_by_date_range("u1", T0, T0 + timedelta(hours=1), 10)
        assert [event.id for event in events] == ["mine"]

    def test_closed_connection_raises_storage_error(self, db_path):
        with database_connection(db_path) as connection:
            store = ActivityLogStore(connection)
        with pytest.raises(StorageError):
            store.query_by_date_range("u1", T0, T0 + timedelta(hours=1), 10)
