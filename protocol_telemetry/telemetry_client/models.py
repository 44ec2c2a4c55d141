"""Journey events and milestones, and their wire (camelCase JSON) form."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from ..logger import ValidationError

EVENT_TYPES: Tuple[str, ...] = (
    "query",
    "schema_discovery",
    "optimization",
    "migration",
    "connection",
    "error",
    "conversion",
    "llms_txt_evaluator",
)

MILESTONE_TYPES: Tuple[str, ...] = (
    "explore",
    "adopt",
    "dev",
    "prod",
    "llms_txt_evaluator_lead_captured",
    "high_value_lead_captured",
)

# Milestones that bypass batching and flush right away
IMMEDIATE_MILESTONES = frozenset({"prod", "high_value_lead_captured"})

RESULTS: Tuple[str, ...] = ("success", "failure")


@dataclass(frozen=True)
class JourneyEventData:
    tool: str
    action: str
    duration_ms: float
    result: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.result not in RESULTS:
            raise ValidationError(f"result must be one of {RESULTS}, got {self.result!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "action": self.action,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class JourneyContext:
    session_id: str
    server_id: str
    environment: str
    # Overwritten by the client at track time
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "serverId": self.server_id,
            "environment": self.environment,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class JourneyEvent:
    event_type: str
    event_data: JourneyEventData
    context: JourneyContext

    def __post_init__(self):
        if self.event_type not in EVENT_TYPES:
            raise ValidationError(f"event_type must be one of {EVENT_TYPES}, got {self.event_type!r}")

    def stamped(self, timestamp: str) -> "JourneyEvent":
        return replace(self, context=replace(self.context, timestamp=timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "eventData": self.event_data.to_dict(),
            "context": self.context.to_dict(),
        }


@dataclass(frozen=True)
class JourneyMilestone:
    milestone_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.milestone_type not in MILESTONE_TYPES:
            raise ValidationError(
                f"milestone_type must be one of {MILESTONE_TYPES}, got {self.milestone_type!r}"
            )

    @property
    def flush_immediately(self) -> bool:
        return self.milestone_type in IMMEDIATE_MILESTONES

    def to_dict(self) -> Dict[str, Any]:
        return {"milestoneType": self.milestone_type, "metadata": dict(self.metadata)}
