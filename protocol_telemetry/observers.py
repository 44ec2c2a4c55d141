"""Observer registry shared by the matcher, tracker and telemetry client."""
from __future__ import annotations

import threading
from typing import Callable, Generic, List, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

O = TypeVar("O")


class ObserverRegistry(Generic[O]):
    """Ordered set of observers notified synchronously in subscription order.

    A failing observer is logged and skipped; the others still run and the
    component operation that raised the notification is not affected.
    """

    def __init__(self, owner: str):
        self._owner = owner
        self._lock = threading.Lock()
        self._observers: List[O] = []

    def subscribe(self, observer: O) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def unsubscribe(self, observer: O) -> bool:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                return False
            return True

    def __len__(self) -> int:
        return len(self._observers)

    def notify(self, deliver: Callable[[O], None], notification: str) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                deliver(observer)
            except Exception:
                logger.exception(
                    "%s observer %r failed on %s", self._owner, observer, notification
                )


__all__ = ["ObserverRegistry"]
