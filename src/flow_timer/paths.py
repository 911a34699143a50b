"""Locate the timer database."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "FlowTimer"
APP_AUTHOR = "FlowTimer"
DB_ENVVAR = "FLOW_TIMER_DB"
DB_FILENAME = "timer.sqlite3"


def get_data_dir() -> Path:
    """Per-user data directory, created on first use."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    """``$FLOW_TIMER_DB`` when set, else the shared database in the data directory.

    Every owner's timers live in the one file; the server and local CLI
    commands must point at the same path to see each other's state.
    """
    override = os.environ.get(DB_ENVVAR, "").strip()
    if override:
        path = Path(override).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
    return get_data_dir() / DB_FILENAME
