"""
Protocol Tracker - one in-memory event store for HTTP, SSE, WebSocket,
STDIO and gRPC traffic.

- Events are immutable and owned by the store; groups only reference ids
- Routing decisions live in their own index keyed by request id
- A periodic sweep (and an immediate one on overflow) drops anything older
  than the retention window; nothing is persisted, so evicted data is gone
"""
from __future__ import annotations

import json
import threading
import uuid
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

from ..config import TrackerConfig
from ..logger import ContextLogger, UnknownEventError, ValidationError, get_logger
from ..observers import ObserverRegistry
from ..scheduling import Scheduler, ScheduledTask, ThreadingScheduler, epoch_ms
from .agents import identify_ai_agent
from .analytics import aggregate_events, aggregate_routing
from .models import (
    PROTOCOLS,
    ROUTING_STRATEGIES,
    TRANSPORTS,
    CleanupReport,
    EventMetadata,
    GroupAnalytics,
    ProtocolEvent,
    RoutingAnalytics,
    RoutingDecision,
    RoutingInfo,
    TrackerStats,
)

logger = get_logger(__name__)

MetadataLike = Union[EventMetadata, Mapping[str, Any], None]

_METADATA_FIELDS = {"user_agent", "content_type", "response_size", "error_message", "ai_agent", "routing"}


def _coerce_routing(routing: Any) -> Optional[RoutingInfo]:
    if routing is None or isinstance(routing, RoutingInfo):
        return routing
    if isinstance(routing, Mapping):
        return RoutingInfo(
            strategy=routing["strategy"],
            selected_server=routing.get("selected_server"),
            total_servers=routing.get("total_servers"),
        )
    raise ValidationError(f"Unsupported routing info: {routing!r}")


def coerce_metadata(metadata: MetadataLike) -> EventMetadata:
    """Accept an ``EventMetadata`` or a plain dict (unknown keys go to ``extra``)."""
    if metadata is None:
        return EventMetadata()
    if isinstance(metadata, EventMetadata):
        return metadata
    known = {k: v for k, v in metadata.items() if k in _METADATA_FIELDS}
    extra = dict(metadata.get("extra") or {})
    extra.update({k: v for k, v in metadata.items() if k not in _METADATA_FIELDS and k != "extra"})
    known["routing"] = _coerce_routing(known.get("routing"))
    return EventMetadata(extra=extra, **known)


# =============================================================================
# Observers
# =============================================================================

class TrackerObserver:
    """Override the callbacks you care about; the defaults do nothing."""

    def on_event(self, event: ProtocolEvent) -> None:
        pass

    def on_group_updated(self, group_id: str, event_id: str) -> None:
        pass

    def on_routing_decision(self, decision: RoutingDecision) -> None:
        pass

    def on_cleanup(self, report: CleanupReport) -> None:
        pass


class LoggingTrackerObserver(TrackerObserver):
    """Writes tracker notifications as structured log lines."""

    def __init__(self, log: Optional[ContextLogger] = None, log_events: bool = False):
        self.log = log or ContextLogger(get_logger("protocol_telemetry.tracking", json_format=True),
                                        component="protocol_tracker")
        self.log_events = log_events

    def on_event(self, event: ProtocolEvent) -> None:
        if self.log_events:
            self.log.debug("event", event_id=event.id, protocol=event.protocol,
                           endpoint=event.endpoint, status_code=event.status_code)

    def on_routing_decision(self, decision: RoutingDecision) -> None:
        self.log.info("routing_decision", request_id=decision.request_id,
                      strategy=decision.strategy, selected_server=decision.selected_server)

    def on_cleanup(self, report: CleanupReport) -> None:
        self.log.info("cleanup", deleted_events=report.deleted_events,
                      deleted_routing_decisions=report.deleted_routing_decisions,
                      deleted_groups=report.deleted_groups, reason=report.reason)


# =============================================================================
# Tracker
# =============================================================================

class ProtocolTracker:
    """Ingest, group, aggregate and evict multi-protocol traffic events."""

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or TrackerConfig()
        self.scheduler = scheduler or ThreadingScheduler()
        self._clock = clock or self.scheduler.now
        self._lock = threading.RLock()
        # Insertion order is arrival order, so the front holds the oldest events
        self._events: "OrderedDict[str, ProtocolEvent]" = OrderedDict()
        self._groups: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}
        self._routing: Dict[str, RoutingDecision] = {}
        self.observers: ObserverRegistry[TrackerObserver] = ObserverRegistry("protocol_tracker")
        self._task: Optional[ScheduledTask] = self.scheduler.every(
            self.config.cleanup_interval, self._scheduled_cleanup, name="protocol-tracker-cleanup"
        )

    def subscribe(self, observer: TrackerObserver) -> None:
        self.observers.subscribe(observer)

    def unsubscribe(self, observer: TrackerObserver) -> bool:
        return self.observers.unsubscribe(observer)

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def track_event(
        self,
        protocol: str,
        transport: str,
        endpoint: str,
        duration_ms: float,
        session_id: str,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        metadata: MetadataLike = None,
    ) -> str:
        """Store a new event and return its generated id."""
        if protocol not in PROTOCOLS:
            raise ValidationError(f"Unknown protocol {protocol!r}; expected one of {PROTOCOLS}")
        if transport not in TRANSPORTS:
            raise ValidationError(f"Unknown transport {transport!r}; expected one of {TRANSPORTS}")
        if duration_ms < 0:
            raise ValidationError(f"duration_ms must be >= 0, got {duration_ms}")

        now = self.now()
        event = ProtocolEvent(
            id=f"{protocol}_{epoch_ms(now)}_{uuid.uuid4().hex[:7]}",
            protocol=protocol,
            transport=transport,
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            duration_ms=duration_ms,
            timestamp=now,
            session_id=session_id,
            metadata=coerce_metadata(metadata),
        )

        with self._lock:
            self._events[event.id] = event
            overflow = len(self._events) > self.config.max_events

        self.observers.notify(lambda o: o.on_event(event), "event")

        if overflow:
            self._sweep(reason="overflow")
        return event.id

    def track_http_request(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        session_id: str,
        user_agent: Optional[str] = None,
        content_type: Optional[str] = None,
        response_size: Optional[int] = None,
        routing: Union[RoutingInfo, Mapping[str, Any], None] = None,
    ) -> str:
        return self.track_event(
            protocol="http",
            transport="request-response",
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            duration_ms=duration_ms,
            session_id=session_id,
            metadata=EventMetadata(
                user_agent=user_agent,
                content_type=content_type,
                response_size=response_size,
                ai_agent=identify_ai_agent(user_agent) if user_agent else None,
                routing=_coerce_routing(routing),
            ),
        )

    def track_sse_stream(
        self,
        endpoint: str,
        duration_ms: float,
        session_id: str,
        message_count: Optional[int] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        return self.track_event(
            protocol="sse",
            transport="streaming",
            endpoint=endpoint,
            duration_ms=duration_ms,
            session_id=session_id,
            metadata=EventMetadata(
                user_agent=user_agent,
                response_size=message_count,
                ai_agent=identify_ai_agent(user_agent) if user_agent else None,
            ),
        )

    def track_websocket_connection(
        self,
        endpoint: str,
        duration_ms: float,
        session_id: str,
        messages_exchanged: Optional[int] = None,
        disconnect_reason: Optional[str] = None,
    ) -> str:
        return self.track_event(
            protocol="websocket",
            transport="bidirectional",
            endpoint=endpoint,
            duration_ms=duration_ms,
            session_id=session_id,
            metadata=EventMetadata(
                response_size=messages_exchanged,
                error_message=disconnect_reason,
            ),
        )

    def track_stdio_communication(
        self,
        endpoint: str,
        duration_ms: float,
        session_id: str,
        success: bool,
        error_message: Optional[str] = None,
    ) -> str:
        """``endpoint`` is the MCP method name."""
        return self.track_event(
            protocol="stdio",
            transport="bidirectional",
            endpoint=endpoint,
            status_code=200 if success else 500,
            duration_ms=duration_ms,
            session_id=session_id,
            metadata=EventMetadata(error_message=error_message),
        )

    def track_grpc_call(
        self,
        endpoint: str,
        status_code: int,
        duration_ms: float,
        session_id: str,
        message_size: Optional[int] = None,
        is_streaming: bool = False,
    ) -> str:
        """``endpoint`` is ``service.method``."""
        return self.track_event(
            protocol="grpc",
            transport="streaming" if is_streaming else "request-response",
            endpoint=endpoint,
            status_code=status_code,
            duration_ms=duration_ms,
            session_id=session_id,
            metadata=EventMetadata(response_size=message_size),
        )

    def get_event(self, event_id: str) -> Optional[ProtocolEvent]:
        with self._lock:
            return self._events.get(event_id)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def add_event_to_group(self, event_id: str, group_id: str) -> None:
        """Reference an existing event from a group (created on first use).

        Raises:
            UnknownEventError: ``event_id`` is not retained
        """
        with self._lock:
            if event_id not in self._events:
                raise UnknownEventError(event_id)
            self._groups.setdefault(group_id, set()).add(event_id)
            self._memberships.setdefault(event_id, set()).add(group_id)
        self.observers.notify(lambda o: o.on_group_updated(group_id, event_id), "group_updated")

    def group_event_ids(self, group_id: str) -> Set[str]:
        with self._lock:
            return set(self._groups.get(group_id, ()))

    def remove_group(self, group_id: str, delete_events: bool = False) -> bool:
        """Drop a group; optionally delete events no other group references."""
        with self._lock:
            event_ids = self._groups.pop(group_id, None)
            if event_ids is None:
                return False
            orphans: List[str] = []
            for event_id in event_ids:
                memberships = self._memberships.get(event_id)
                if memberships is not None:
                    memberships.discard(group_id)
                    if not memberships:
                        del self._memberships[event_id]
                        orphans.append(event_id)
            deleted = 0
            if delete_events:
                for event_id in orphans:
                    if self._events.pop(event_id, None) is not None:
                        deleted += 1
        if deleted:
            report = CleanupReport(deleted_events=deleted, deleted_routing_decisions=0,
                                   deleted_groups=1, reason="group_removed")
            self.observers.notify(lambda o: o.on_cleanup(report), "cleanup")
        return True

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def record_routing_decision(self, decision: RoutingDecision) -> RoutingDecision:
        if decision.strategy not in ROUTING_STRATEGIES:
            raise ValidationError(
                f"Unknown routing strategy {decision.strategy!r}; expected one of {ROUTING_STRATEGIES}"
            )
        if decision.timestamp is None:
            decision = replace(decision, timestamp=self.now())
        with self._lock:
            self._routing[decision.request_id] = decision
        self.observers.notify(lambda o: o.on_routing_decision(decision), "routing_decision")
        return decision

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_group_analytics(self, group_id: str, time_window_hours: float = 24) -> Optional[GroupAnalytics]:
        with self._lock:
            event_ids = self._groups.get(group_id)
            if not event_ids:
                return None
            # Walk the store, not the set, so ties resolve by arrival order
            events = [e for eid, e in self._events.items() if eid in event_ids]
        return aggregate_events(events, group_id, time_window_hours, self.now())

    def get_analytics(self, time_window_hours: float = 24) -> Optional[GroupAnalytics]:
        """Aggregate over every retained event, regardless of grouping."""
        with self._lock:
            events = list(self._events.values())
        return aggregate_events(events, None, time_window_hours, self.now())

    def get_routing_analytics(self, time_window_hours: float = 24) -> RoutingAnalytics:
        with self._lock:
            decisions = list(self._routing.values())
        return aggregate_routing(decisions, time_window_hours, self.now())

    def get_stats(self) -> TrackerStats:
        now = self.now()
        with self._lock:
            oldest_age_ms = 0
            if self._events:
                oldest = min(e.timestamp for e in self._events.values())
                oldest_age_ms = int((now - oldest).total_seconds() * 1000)
            return TrackerStats(
                total_events=len(self._events),
                total_groups=len(self._groups),
                total_routing_decisions=len(self._routing),
                oldest_event_age_ms=oldest_age_ms,
                memory_usage=self._estimate_memory_usage(),
            )

    def _estimate_memory_usage(self) -> int:
        """Rough byte estimate from the serialized JSON size."""
        events_size = len(json.dumps([e.to_dict() for e in self._events.values()], default=str))
        groups_size = len(json.dumps({g: sorted(ids) for g, ids in self._groups.items()}))
        routing_size = len(json.dumps([d.to_dict() for d in self._routing.values()], default=str))
        return events_size + groups_size + routing_size

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup(self) -> int:
        """Run the retention sweep now; returns the number of deleted events."""
        return self._sweep(reason="manual").deleted_events

    def _scheduled_cleanup(self) -> None:
        self._sweep(reason="scheduled")

    def _sweep(self, reason: str) -> CleanupReport:
        cutoff = self.now() - timedelta(hours=self.config.retention_hours)
        with self._lock:
            stale = [eid for eid, e in self._events.items() if e.timestamp < cutoff]
            if reason == "overflow":
                excess = len(self._events) - len(stale) - self.config.max_events
                if excess > 0:
                    stale_set = set(stale)
                    for eid in self._events:
                        if excess <= 0:
                            break
                        if eid not in stale_set:
                            stale.append(eid)
                            excess -= 1

            deleted_groups = 0
            for eid in stale:
                del self._events[eid]
                for group_id in self._memberships.pop(eid, ()):
                    members = self._groups.get(group_id)
                    if members is None:
                        continue
                    members.discard(eid)
                    if not members:
                        del self._groups[group_id]
                        deleted_groups += 1

            stale_routing = [rid for rid, d in self._routing.items()
                             if d.timestamp is not None and d.timestamp < cutoff]
            for rid in stale_routing:
                del self._routing[rid]

        report = CleanupReport(
            deleted_events=len(stale),
            deleted_routing_decisions=len(stale_routing),
            deleted_groups=deleted_groups,
            reason=reason,
        )
        if report.deleted_events or report.deleted_routing_decisions:
            logger.info(
                "Evicted %d event(s), %d routing decision(s), %d group(s) [%s]",
                report.deleted_events, report.deleted_routing_decisions, deleted_groups, reason,
            )
            self.observers.notify(lambda o: o.on_cleanup(report), "cleanup")
        return report

    def shutdown(self) -> None:
        """Stop the periodic sweep and run a final one."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._sweep(reason="shutdown")
