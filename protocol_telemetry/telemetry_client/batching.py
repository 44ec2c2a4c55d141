"""
telemetry_client/batching.py - Journey telemetry batching client.
"""
from __future__ import annotations

import json
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from ..config import TelemetryConfig
from ..logger import ContextLogger, TransportError, get_logger
from ..observers import ObserverRegistry
from ..scheduling import Scheduler, ScheduledTask, ThreadingScheduler, epoch_ms, iso_timestamp
from .models import JourneyContext, JourneyEvent, JourneyEventData, JourneyMilestone

logger = get_logger(__name__)

Payload = Dict[str, Any]


class TelemetryObserver:
    """Override the callbacks you care about; the defaults do nothing."""

    def on_event(self, event: JourneyEvent) -> None:
        pass

    def on_milestone(self, milestone: JourneyMilestone) -> None:
        pass

    def on_flush(self, payload: Payload) -> None:
        pass

    def on_error(self, error: TransportError, payload: Payload) -> None:
        pass


class LoggingTelemetryObserver(TelemetryObserver):
    """Writes delivery outcomes as structured log lines."""

    def __init__(self, log: Optional[ContextLogger] = None):
        self.log = log or ContextLogger(get_logger("protocol_telemetry.telemetry", json_format=True),
                                        component="telemetry_client")

    def on_milestone(self, milestone: JourneyMilestone) -> None:
        self.log.info("milestone", milestone_type=milestone.milestone_type)

    def on_flush(self, payload: Payload) -> None:
        self.log.info("flush", events=len(payload["events"]), milestones=len(payload["milestones"]))

    def on_error(self, error: TransportError, payload: Payload) -> None:
        self.log.error("flush_failed", error=str(error), status_code=error.status_code,
                       events=len(payload["events"]), milestones=len(payload["milestones"]))


class TelemetryClient:
    """Buffers journey events and milestones and ships them in batches.

    - Flushes when the event buffer reaches ``batch_size``, on every
      ``flush_interval`` tick, and right away for high-value milestones
    - Size- and milestone-triggered flushes run on the scheduler so the
      tracking call never waits on the network
    - Buffers are cleared before the POST; on failure only the newest
      ``batch_size`` events and milestones of the failed payload are put back
    """

    def __init__(
        self,
        config: TelemetryConfig,
        session: Optional[requests.Session] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.scheduler = scheduler or ThreadingScheduler()
        self._clock = clock or self.scheduler.now
        self._lock = threading.RLock()
        self._events: List[JourneyEvent] = []
        self._milestones: List[JourneyMilestone] = []
        self.observers: ObserverRegistry[TelemetryObserver] = ObserverRegistry("telemetry_client")
        self.log = ContextLogger(logger, endpoint=config.analytics_endpoint)
        self._task: Optional[ScheduledTask] = self.scheduler.every(
            config.flush_interval, self.flush, name="telemetry-auto-flush"
        )

    def subscribe(self, observer: TelemetryObserver) -> None:
        self.observers.subscribe(observer)

    def unsubscribe(self, observer: TelemetryObserver) -> bool:
        return self.observers.unsubscribe(observer)

    def _now_iso(self) -> str:
        return iso_timestamp(self._clock())

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track(self, event: JourneyEvent) -> JourneyEvent:
        """Buffer an event stamped with the client clock."""
        stamped = event.stamped(self._now_iso())
        with self._lock:
            self._events.append(stamped)
            full = len(self._events) >= self.config.batch_size
        self.observers.notify(lambda o: o.on_event(stamped), "event")
        if full:
            self.scheduler.submit(self.flush, name="telemetry-batch-flush")
        return stamped

    def track_milestone(self, milestone_type: str, metadata: Optional[Dict[str, Any]] = None) -> JourneyMilestone:
        milestone = JourneyMilestone(
            milestone_type=milestone_type,
            metadata={**(metadata or {}), "timestamp": self._now_iso()},
        )
        with self._lock:
            self._milestones.append(milestone)
        self.observers.notify(lambda o: o.on_milestone(milestone), "milestone")
        if milestone.flush_immediately:
            self.scheduler.submit(self.flush, name="telemetry-milestone-flush")
        return milestone

    def track_journey_progression(
        self,
        from_stage: str,
        to_stage: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> JourneyEvent:
        metadata = dict(metadata or {})
        session_id = metadata.get("session_id") or f"session_{epoch_ms(self._clock())}"
        return self.track(JourneyEvent(
            event_type="query",
            event_data=JourneyEventData(
                tool="journey_tracker",
                action="progression",
                duration_ms=0,
                result="success",
                metadata={"from_stage": from_stage, "to_stage": to_stage, **metadata},
            ),
            context=JourneyContext(
                session_id=session_id,
                server_id="journey_tracker",
                environment=self.config.environment,
            ),
        ))

    def get_pending_event_count(self) -> int:
        with self._lock:
            return len(self._events) + len(self._milestones)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def flush(self) -> bool:
        """Send everything buffered. Returns True only when a batch was delivered."""
        with self._lock:
            if not self._events and not self._milestones:
                return False
            events, self._events = self._events, []
            milestones, self._milestones = self._milestones, []

        payload: Payload = {
            "events": [e.to_dict() for e in events],
            "milestones": [m.to_dict() for m in milestones],
            "timestamp": self._now_iso(),
        }

        try:
            resp = self.session.post(
                self.config.analytics_endpoint,
                data=json.dumps(payload, default=str),
                headers=self._headers(),
                timeout=self.config.request_timeout,
            )
            if not 200 <= resp.status_code < 300:
                raise TransportError(f"HTTP {resp.status_code}: {resp.reason}", status_code=resp.status_code)
        except requests.exceptions.RequestException as e:
            self._on_failure(TransportError(f"{type(e).__name__}: {e}"), events, milestones, payload)
            return False
        except TransportError as e:
            self._on_failure(e, events, milestones, payload)
            return False

        self.log.debug("Flushed telemetry batch", events=len(events), milestones=len(milestones))
        self.observers.notify(lambda o: o.on_flush(payload), "flush")
        return True

    def _on_failure(
        self,
        error: TransportError,
        events: List[JourneyEvent],
        milestones: List[JourneyMilestone],
        payload: Payload,
    ) -> None:
        keep = self.config.batch_size
        kept_events = events[-keep:]
        kept_milestones = milestones[-keep:]
        with self._lock:
            self._events = kept_events + self._events
            self._milestones = kept_milestones + self._milestones

        dropped = (len(events) - len(kept_events)) + (len(milestones) - len(kept_milestones))
        self.log.error(
            "Failed to flush telemetry data",
            error=str(error),
            status_code=error.status_code,
            requeued=len(kept_events) + len(kept_milestones),
            dropped=dropped,
        )
        self.observers.notify(lambda o: o.on_error(error, payload), "error")

    def shutdown(self) -> bool:
        """Stop auto-flush and deliver whatever is still buffered."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        try:
            return self.flush()
        finally:
            if self._owns_session:
                self.session.close()
