"""Data shapes shared by the protocol tracker and its analytics."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

PROTOCOLS: Tuple[str, ...] = ("http", "sse", "websocket", "stdio", "grpc")
TRANSPORTS: Tuple[str, ...] = ("request-response", "streaming", "bidirectional")
ROUTING_STRATEGIES: Tuple[str, ...] = ("semantic", "round-robin", "least-loaded", "sticky")


@dataclass(frozen=True)
class RoutingInfo:
    """Routing summary attached to a single event."""
    strategy: str
    selected_server: Optional[str] = None
    total_servers: Optional[int] = None


@dataclass(frozen=True)
class EventMetadata:
    user_agent: Optional[str] = None
    content_type: Optional[str] = None
    response_size: Optional[int] = None
    error_message: Optional[str] = None
    ai_agent: Optional[str] = None
    routing: Optional[RoutingInfo] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProtocolEvent:
    """One observed unit of traffic. Never mutated after creation."""
    id: str
    protocol: str
    transport: str
    endpoint: str
    duration_ms: float
    timestamp: datetime
    session_id: str
    method: Optional[str] = None
    status_code: Optional[int] = None
    metadata: EventMetadata = field(default_factory=EventMetadata)

    @property
    def is_success(self) -> bool:
        return not self.status_code or 200 <= self.status_code < 400

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class RoutingDecision:
    request_id: str
    strategy: str
    available_servers: List[str]
    selected_server: str
    selection_reason: str
    load_factors: Optional[Dict[str, float]] = None
    semantic_score: Optional[float] = None
    # Stamped by the tracker when left unset
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return data


@dataclass
class EndpointStats:
    endpoint: str
    count: int
    avg_latency: float


@dataclass
class ErrorPattern:
    pattern: str
    count: int
    examples: List[str] = field(default_factory=list)


@dataclass
class GroupAnalytics:
    group_id: Optional[str]
    total_requests: int
    success_rate: float
    average_latency: float
    protocol_distribution: Dict[str, int]
    transport_distribution: Dict[str, int]
    top_endpoints: List[EndpointStats]
    error_patterns: List[ErrorPattern]
    ai_agent_distribution: Dict[str, int]
    time_window_hours: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RoutingAnalytics:
    total_decisions: int
    strategy_distribution: Dict[str, int]
    server_utilization: Dict[str, int]
    average_semantic_score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrackerStats:
    total_events: int
    total_groups: int
    total_routing_decisions: int
    oldest_event_age_ms: int
    memory_usage: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CleanupReport:
    deleted_events: int
    deleted_routing_decisions: int
    deleted_groups: int
    reason: str
