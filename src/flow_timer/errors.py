"""Error taxonomy for timer transitions, storage and transport."""

from __future__ import annotations


class TimerError(Exception):
    """Base class for every error raised by the timer engine."""

    code = "timer_error"


class ConflictError(TimerError):
    """Start was requested while the owner already has an active timer."""

    code = "conflict"


class InvalidStateError(TimerError):
    """Pause while paused, or resume while running."""

    code = "invalid_state"


class NotFoundError(TimerError):
    """The owner has no active timer."""

    code = "not_found"


class StorageError(TimerError):
    """The activity log or time entry store could not be written or read."""

    code = "storage_error"


class TransportError(TimerError):
    """A remote call timed out or the connection dropped; the outcome is unknown."""

    code = "transport_error"


ERRORS_BY_CODE: dict[str, type[TimerError]] = {
    cls.code: cls
    for cls in (ConflictError, InvalidStateError, NotFoundError, StorageError, TransportError)
}
