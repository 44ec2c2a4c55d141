"""Background scheduling for periodic sweeps and flushes.

Components never start raw timers themselves; they ask an injected
scheduler for a periodic task and get back a handle they can cancel.
``ThreadingScheduler`` is the production implementation built on daemon
``threading.Timer`` objects. ``ManualScheduler`` keeps virtual time so
tests (and deterministic replays) can advance the clock instead of
sleeping.
"""
from __future__ import annotations

import heapq
import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from .logger import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


def iso_timestamp(ts: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ScheduledTask:
    """Handle for a periodic task."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def run_once(self) -> None:
        if self.cancelled:
            return
        try:
            self.callback()
        except Exception:
            logger.exception("Periodic task %s failed", self.name)


class Scheduler:
    """Interface every scheduler implements."""

    def every(self, interval: float, callback: Callable[[], None], name: str = "task") -> ScheduledTask:
        raise NotImplementedError

    def submit(self, callback: Callable[[], None], name: str = "job") -> None:
        raise NotImplementedError

    def now(self) -> datetime:
        return utc_now()


class _TimerTask(ScheduledTask):
    """Periodic task that re-arms a daemon ``threading.Timer`` after each tick."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        super().__init__(name, interval, callback)
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def start(self) -> None:
        with self._lock:
            if self.cancelled:
                return
            self._timer = threading.Timer(self.interval, self._tick)
            self._timer.daemon = True
            self._timer.name = f"{self.name}-timer"
            self._timer.start()

    def _tick(self) -> None:
        self.run_once()
        self.start()

    def cancel(self) -> None:
        super().cancel()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class ThreadingScheduler(Scheduler):
    """Wall-clock scheduler backed by daemon threads."""

    def every(self, interval: float, callback: Callable[[], None], name: str = "task") -> ScheduledTask:
        task = _TimerTask(name, interval, callback)
        task.start()
        return task

    def submit(self, callback: Callable[[], None], name: str = "job") -> None:
        def _run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Background job %s failed", name)

        threading.Thread(target=_run, name=name, daemon=True).start()


class ManualScheduler(Scheduler):
    """Virtual-time scheduler.

    ``advance(seconds)`` moves the clock forward and fires every periodic
    callback that falls due, in due-time order. ``submit`` runs jobs inline
    so their effects are visible as soon as the submitting call returns.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utc_now()
        self._seq = itertools.count()
        self._queue: List[Tuple[datetime, int, ScheduledTask]] = []
        self.submitted = 0

    def now(self) -> datetime:
        return self._now

    def every(self, interval: float, callback: Callable[[], None], name: str = "task") -> ScheduledTask:
        task = ScheduledTask(name, interval, callback)
        heapq.heappush(self._queue, (self._now + timedelta(seconds=interval), next(self._seq), task))
        return task

    def submit(self, callback: Callable[[], None], name: str = "job") -> None:
        self.submitted += 1
        try:
            callback()
        except Exception:
            logger.exception("Background job %s failed", name)

    def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self._now = due
            task.run_once()
            if not task.cancelled:
                heapq.heappush(self._queue, (due + timedelta(seconds=task.interval), next(self._seq), task))
        self._now = target

    def pending_tasks(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)


__all__ = [
    "ScheduledTask",
    "Scheduler",
    "ThreadingScheduler",
    "ManualScheduler",
    "utc_now",
    "epoch_ms",
    "iso_timestamp",
]
