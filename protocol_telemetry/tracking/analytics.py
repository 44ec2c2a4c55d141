"""Aggregations over protocol events and routing decisions.

Pure functions: callers pass in already-snapshotted events so the tracker
can release its lock before the heavier counting starts.
"""
from __future__ import annotations

from collections import Counter, OrderedDict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .agents import UNKNOWN_AGENT
from .models import (
    PROTOCOLS,
    ROUTING_STRATEGIES,
    TRANSPORTS,
    EndpointStats,
    ErrorPattern,
    GroupAnalytics,
    ProtocolEvent,
    RoutingAnalytics,
    RoutingDecision,
)

TOP_ENDPOINTS = 10
MAX_ERROR_EXAMPLES = 3
UNKNOWN_ERROR = "UNKNOWN_ERROR"


def window_cutoff(now: datetime, time_window_hours: float) -> datetime:
    return now - timedelta(hours=time_window_hours)


def is_error(event: ProtocolEvent) -> bool:
    """An error message always counts, even on a 2xx status."""
    if event.metadata.error_message:
        return True
    # Status 0 (gRPC OK) is treated like a missing status code
    return bool(event.status_code) and event.status_code >= 400


def error_pattern_key(event: ProtocolEvent) -> str:
    return f"HTTP_{event.status_code}" if event.status_code else UNKNOWN_ERROR


def aggregate_events(
    events: Iterable[ProtocolEvent],
    group_id: Optional[str],
    time_window_hours: float,
    now: datetime,
) -> Optional[GroupAnalytics]:
    """Summarise events newer than the window; ``None`` when none qualify."""
    cutoff = window_cutoff(now, time_window_hours)
    relevant: List[ProtocolEvent] = [e for e in events if e.timestamp > cutoff]
    if not relevant:
        return None

    total = len(relevant)
    successful = sum(1 for e in relevant if e.is_success)
    avg_latency = sum(e.duration_ms for e in relevant) / total

    protocol_dist = {p: 0 for p in PROTOCOLS}
    transport_dist = {t: 0 for t in TRANSPORTS}
    agent_dist: Counter = Counter()
    endpoint_count: Counter = Counter()
    endpoint_latency: Dict[str, float] = {}
    errors: "OrderedDict[str, ErrorPattern]" = OrderedDict()

    for e in relevant:
        protocol_dist[e.protocol] = protocol_dist.get(e.protocol, 0) + 1
        transport_dist[e.transport] = transport_dist.get(e.transport, 0) + 1
        if e.metadata.ai_agent and e.metadata.ai_agent != UNKNOWN_AGENT:
            agent_dist[e.metadata.ai_agent] += 1

        endpoint_count[e.endpoint] += 1
        endpoint_latency[e.endpoint] = endpoint_latency.get(e.endpoint, 0.0) + e.duration_ms

        if is_error(e):
            key = error_pattern_key(e)
            bucket = errors.get(key)
            if bucket is None:
                bucket = errors[key] = ErrorPattern(pattern=key, count=0)
            bucket.count += 1
            if len(bucket.examples) < MAX_ERROR_EXAMPLES:
                bucket.examples.append(e.metadata.error_message or e.endpoint)

    # Counter.most_common keeps first-seen order for ties
    top_endpoints = [
        EndpointStats(endpoint=ep, count=n, avg_latency=endpoint_latency[ep] / n)
        for ep, n in endpoint_count.most_common(TOP_ENDPOINTS)
    ]
    error_patterns = sorted(errors.values(), key=lambda p: -p.count)

    return GroupAnalytics(
        group_id=group_id,
        total_requests=total,
        success_rate=successful / total,
        average_latency=avg_latency,
        protocol_distribution=protocol_dist,
        transport_distribution=transport_dist,
        top_endpoints=top_endpoints,
        error_patterns=error_patterns,
        ai_agent_distribution=dict(agent_dist),
        time_window_hours=time_window_hours,
    )


def aggregate_routing(
    decisions: Iterable[RoutingDecision],
    time_window_hours: float,
    now: datetime,
) -> RoutingAnalytics:
    cutoff = window_cutoff(now, time_window_hours)
    recent = [d for d in decisions if d.timestamp is not None and d.timestamp > cutoff]

    strategy_dist = {s: 0 for s in ROUTING_STRATEGIES}
    utilization: Dict[str, int] = {}
    for d in recent:
        strategy_dist[d.strategy] = strategy_dist.get(d.strategy, 0) + 1
        utilization[d.selected_server] = utilization.get(d.selected_server, 0) + 1

    scores = [d.semantic_score for d in recent if d.semantic_score is not None]
    avg_score = sum(scores) / len(scores) if scores else 0.0

    return RoutingAnalytics(
        total_decisions=len(recent),
        strategy_distribution=strategy_dist,
        server_utilization=utilization,
        average_semantic_score=avg_score,
    )
