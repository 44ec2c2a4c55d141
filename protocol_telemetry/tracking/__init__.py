"""
tracking - Unified protocol event tracking.

Records HTTP, SSE, WebSocket, STDIO and gRPC traffic under one event shape,
groups events for scoped analytics, records routing decisions, and evicts
anything older than the retention window.

Public API:
- ProtocolTracker: the event store and its track_* wrappers
- TrackerObserver / LoggingTrackerObserver: notification hooks
- identify_ai_agent: map a User-Agent to an AI agent label
"""
from __future__ import annotations

from .agents import AI_AGENT_SIGNATURES, UNKNOWN_AGENT, identify_ai_agent, is_ai_agent
from .analytics import aggregate_events, aggregate_routing, is_error
from .models import (
    PROTOCOLS,
    ROUTING_STRATEGIES,
    TRANSPORTS,
    CleanupReport,
    EndpointStats,
    ErrorPattern,
    EventMetadata,
    GroupAnalytics,
    ProtocolEvent,
    RoutingAnalytics,
    RoutingDecision,
    RoutingInfo,
    TrackerStats,
)
from .tracker import LoggingTrackerObserver, ProtocolTracker, TrackerObserver, coerce_metadata

__all__ = [
    "AI_AGENT_SIGNATURES",
    "UNKNOWN_AGENT",
    "identify_ai_agent",
    "is_ai_agent",
    "aggregate_events",
    "aggregate_routing",
    "is_error",
    "PROTOCOLS",
    "ROUTING_STRATEGIES",
    "TRANSPORTS",
    "CleanupReport",
    "EndpointStats",
    "ErrorPattern",
    "EventMetadata",
    "GroupAnalytics",
    "ProtocolEvent",
    "RoutingAnalytics",
    "RoutingDecision",
    "RoutingInfo",
    "TrackerStats",
    "LoggingTrackerObserver",
    "ProtocolTracker",
    "TrackerObserver",
    "coerce_metadata",
]
