"""Client-side elapsed-time projection between status syncs."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

from .clock import Clock, SystemClock, whole_seconds
from .config import TimerSettings
from .errors import TimerError
from .models import TimerStatus
from .signals import RefreshSignal

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...

    @property
    def is_active(self) -> bool: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]
StatusSource = Callable[[], TimerStatus]
RenderCallback = Callable[[int], None]


class RepeatingTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None], *, name: str = "repeating-timer") -> None:
        self.interval = interval
        self._callback = callback
        self._name = name
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run, args=(stop_event,), name=self._name, daemon=True
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()

    def cancel(self) -> None:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is None or thread is None:
            return
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=max(self.interval, 1.0) * 2)

    @property
    def is_active(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Repeating timer %s callback failed", self._name)


def _default_timer_factory(interval: float, callback: Callable[[], None]) -> TimerHandle:
    return RepeatingTimer(interval, callback)


class ElapsedTimeProjector:
    """Shows a smoothly increasing elapsed counter without a request per second.

    The projection base is the last status snapshot. While the timer runs the
    displayed value is recomputed from the local clock once per tick; while it
    is paused the value embedded in the snapshot is shown unchanged. A sync
    (explicit, refresh signal, background poll or becoming visible) replaces
    the base wholesale.
    """

    def __init__(
        self,
        status_source: StatusSource,
        *,
        settings: Optional[TimerSettings] = None,
        clock: Optional[Clock] = None,
        on_render: Optional[RenderCallback] = None,
        refresh: Optional[RefreshSignal] = None,
        timer_factory: TimerFactory = _default_timer_factory,
    ) -> None:
        self._source = status_source
        self._settings = settings or TimerSettings()
        self._clock = clock or SystemClock()
        self._on_render = on_render
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._base: Optional[TimerStatus] = None
        self._tick: Optional[TimerHandle] = None
        self._poll: Optional[TimerHandle] = None
        self._suspended = False
        self._unsubscribe = refresh.subscribe(self.sync) if refresh else None

    @property
    def status(self) -> Optional[TimerStatus]:
        with self._lock:
            return self._base

    @property
    def elapsed_seconds(self) -> int:
        with self._lock:
            return self._project()

    @property
    def tick_active(self) -> bool:
        with self._lock:
            return self._tick is not None

    @property
    def poll_active(self) -> bool:
        with self._lock:
            return self._poll is not None

    def start(self) -> None:
        """Sync once and begin background polling."""
        with self._lock:
            self._suspended = False
            self._start_poll()
        self.sync()

    def sync(self) -> Optional[TimerStatus]:
        try:
            status = self._source()
        except TimerError as exc:
            logger.warning("Status sync failed; keeping previous projection: %s", exc)
            return None
        self.apply(status)
        return status

    def apply(self, status: TimerStatus) -> None:
        stale: list[Optional[TimerHandle]] = []
        with self._lock:
            self._base = status
            if status.is_running and not self._suspended:
                self._start_tick()
            else:
                stale.append(self._detach_tick())
            value = self._project()
        _cancel_all(stale)
        self._render(value)

    def suspend(self) -> None:
        """Stop all local scheduling, e.g. when the display is hidden."""
        with self._lock:
            self._suspended = True
            stale = [self._detach_tick(), self._detach_poll()]
        _cancel_all(stale)

    def on_visible(self) -> None:
        self.start()

    def close(self) -> None:
        self.suspend()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _project(self) -> int:
        base = self._base
        if base is None or not base.has_active_timer or base.timer is None:
            return 0
        if base.timer.is_paused:
            return base.elapsed_seconds
        elapsed = whole_seconds(base.timer.start_time, self._clock.now())
        return max(0, elapsed - base.timer.total_paused_duration)

    def _on_tick(self) -> None:
        with self._lock:
            if self._tick is None:
                return
            value = self._project()
        logger.debug("Projected elapsed: %ss", value)
        self._render(value)

    def _render(self, value: int) -> None:
        if self._on_render is not None:
            self._on_render(value)

    def _start_tick(self) -> None:
        if self._tick is not None:
            return
        self._tick = self._timer_factory(self._settings.tick_interval.total_seconds(), self._on_tick)
        self._tick.start()

    def _detach_tick(self) -> Optional[TimerHandle]:
        handle, self._tick = self._tick, None
        return handle

    def _start_poll(self) -> None:
        if self._poll is not None:
            return
        self._poll = self._timer_factory(self._settings.poll_interval.total_seconds(), self.sync)
        self._poll.start()

    def _detach_poll(self) -> Optional[TimerHandle]:
        handle, self._poll = self._poll, None
        return handle


def _cancel_all(handles: list[Optional[TimerHandle]]) -> None:
    # Must run outside the projector lock; cancel() joins the callback thread.
    for handle in handles:
        if handle is not None:
            handle.cancel()
