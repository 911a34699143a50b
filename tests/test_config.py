"""Settings derivation, database location and refresh broadcasting."""

import gc
from datetime import timedelta

from flow_timer.config import TimerSettings
from flow_timer.locking import OwnerLocks
from flow_timer.paths import DB_ENVVAR, get_db_path
from flow_timer.signals import RefreshSignal


def test_from_intervals_derives_timeout():
    settings = TimerSettings.from_intervals(poll_seconds=60)
    assert settings.poll_interval == timedelta(seconds=60)
    assert settings.request_timeout == timedelta(seconds=20)
    assert settings.tick_interval == timedelta(seconds=1)


def test_from_intervals_minimum_timeout():
    assert TimerSettings.from_intervals(poll_seconds=3).request_timeout == timedelta(seconds=5)


def test_activity_limit_raises_cap():
    settings = TimerSettings.from_intervals(poll_seconds=30, activity_limit=800)
    assert settings.default_activity_limit == 800
    assert settings.max_activity_limit == 800


def test_refresh_listener_failure_is_isolated():
    signal = RefreshSignal()
    calls = []

    def broken():
        raise RuntimeError("boom")

    signal.subscribe(broken)
    signal.subscribe(lambda: calls.append(1))
    signal.emit()
    assert calls == [1]


def test_unsubscribe():
    signal = RefreshSignal()
    unsubscribe = signal.subscribe(lambda: None)
    unsubscribe()
    unsubscribe()
    assert len(signal) == 0


def test_owner_locks_are_shared_per_owner():
    locks = OwnerLocks()
    first = locks.lock_for("u1")
    second = locks.lock_for("u2")
    assert locks.lock_for("u1") is first
    assert first is not second
    assert len(locks) == 2


def test_owner_locks_released_when_unused():
    locks = OwnerLocks()
    for index in range(50):
        with locks.hold(f"owner-{index}"):
            pass
    gc.collect()
    assert len(locks) == 0


def test_owner_lock_kept_while_held():
    locks = OwnerLocks()
    with locks.hold("u1"):
        gc.collect()
        assert len(locks) == 1
        assert locks.lock_for("u1").locked()


def test_db_path_env_override(tmp_path, monkeypatch):
    target = tmp_path / "nested" / "timers.sqlite3"
    monkeypatch.setenv(DB_ENVVAR, str(target))
    assert get_db_path() == target
    assert target.parent.is_dir()


def test_cli_uses_env_database(tmp_path, monkeypatch):
    from typer.testing import CliRunner

    from flow_timer.cli import app

    target = tmp_path / "env.sqlite3"
    monkeypatch.setenv(DB_ENVVAR, str(target))
    result = CliRunner().invoke(app, ["start", "--owner", "env-user"])
    assert result.exit_code == 0
    assert target.exists()
