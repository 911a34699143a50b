"""Per-owner mutual exclusion for timer transitions."""

from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from typing import Iterator


class OwnerLocks:
    """Hands out one lock per owner id.

    Locks are held weakly: an owner's entry disappears once no caller is
    holding or waiting on its lock, so the map stays bounded by the number
    of owners with a transition in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, owner_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[owner_id] = lock
            return lock

    @contextmanager
    def hold(self, owner_id: str) -> Iterator[None]:
        lock = self.lock_for(owner_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
