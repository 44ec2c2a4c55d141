"""
telemetry_client - Batched delivery of journey telemetry to a collector.

Public API:
- TelemetryClient: buffer + flush (size, timer, high-value milestone)
- JourneyEvent / JourneyEventData / JourneyContext / JourneyMilestone
- TelemetryObserver / LoggingTelemetryObserver: delivery notifications
"""
from __future__ import annotations

from .batching import LoggingTelemetryObserver, TelemetryClient, TelemetryObserver
from .models import (
    EVENT_TYPES,
    IMMEDIATE_MILESTONES,
    MILESTONE_TYPES,
    JourneyContext,
    JourneyEvent,
    JourneyEventData,
    JourneyMilestone,
)

__all__ = [
    "TelemetryClient",
    "TelemetryObserver",
    "LoggingTelemetryObserver",
    "EVENT_TYPES",
    "IMMEDIATE_MILESTONES",
    "MILESTONE_TYPES",
    "JourneyContext",
    "JourneyEvent",
    "JourneyEventData",
    "JourneyMilestone",
]
