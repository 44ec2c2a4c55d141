"""
config.py - Constructor-time configuration for the three components.

Each config is a plain dataclass; ``from_env()`` reads the matching
environment variables and falls back to the defaults below.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .logger import ConfigurationError, get_logger, safe_float, safe_int

logger = get_logger(__name__)

DEFAULT_VECTOR_DIMENSIONS = 384
DEFAULT_SIMILARITY_THRESHOLD = 0.7

DEFAULT_MAX_EVENTS = 10_000
DEFAULT_CLEANUP_INTERVAL_SEC = 300.0
DEFAULT_RETENTION_HOURS = 24.0

DEFAULT_BATCH_SIZE = 10
DEFAULT_FLUSH_INTERVAL_SEC = 30.0
DEFAULT_REQUEST_TIMEOUT_SEC = 10.0
DEFAULT_ENVIRONMENT = "development"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class MatcherConfig:
    vector_dimensions: int = DEFAULT_VECTOR_DIMENSIONS
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    def __post_init__(self):
        if self.vector_dimensions <= 0:
            raise ConfigurationError(f"vector_dimensions must be positive, got {self.vector_dimensions}")
        if not -1.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                f"similarity_threshold must be within [-1, 1], got {self.similarity_threshold}"
            )

    @classmethod
    def from_env(cls) -> "MatcherConfig":
        return cls(
            vector_dimensions=safe_int(
                _env("PATTERN_VECTOR_DIMENSIONS"), DEFAULT_VECTOR_DIMENSIONS,
                logger=logger, context="PATTERN_VECTOR_DIMENSIONS",
            ),
            similarity_threshold=safe_float(
                _env("PATTERN_SIMILARITY_THRESHOLD"), DEFAULT_SIMILARITY_THRESHOLD,
                logger=logger, context="PATTERN_SIMILARITY_THRESHOLD",
            ),
        )


@dataclass(frozen=True)
class TrackerConfig:
    max_events: int = DEFAULT_MAX_EVENTS
    cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SEC
    retention_hours: float = DEFAULT_RETENTION_HOURS

    def __post_init__(self):
        if self.max_events <= 0:
            raise ConfigurationError(f"max_events must be positive, got {self.max_events}")
        if self.cleanup_interval <= 0:
            raise ConfigurationError(f"cleanup_interval must be positive, got {self.cleanup_interval}")
        if self.retention_hours <= 0:
            raise ConfigurationError(f"retention_hours must be positive, got {self.retention_hours}")

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        return cls(
            max_events=safe_int(
                _env("TRACKER_MAX_EVENTS"), DEFAULT_MAX_EVENTS,
                logger=logger, context="TRACKER_MAX_EVENTS",
            ),
            cleanup_interval=safe_float(
                _env("TRACKER_CLEANUP_INTERVAL_SEC"), DEFAULT_CLEANUP_INTERVAL_SEC,
                logger=logger, context="TRACKER_CLEANUP_INTERVAL_SEC",
            ),
            retention_hours=safe_float(
                _env("TRACKER_RETENTION_HOURS"), DEFAULT_RETENTION_HOURS,
                logger=logger, context="TRACKER_RETENTION_HOURS",
            ),
        )


@dataclass(frozen=True)
class TelemetryConfig:
    analytics_endpoint: str
    api_key: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    flush_interval: float = DEFAULT_FLUSH_INTERVAL_SEC
    environment: str = DEFAULT_ENVIRONMENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC

    def __post_init__(self):
        if not self.analytics_endpoint:
            raise ConfigurationError("analytics_endpoint is required")
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.flush_interval <= 0:
            raise ConfigurationError(f"flush_interval must be positive, got {self.flush_interval}")
        if self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_env(cls, analytics_endpoint: Optional[str] = None) -> "TelemetryConfig":
        endpoint = analytics_endpoint or _env("TELEMETRY_ENDPOINT")
        if not endpoint:
            raise ConfigurationError("TELEMETRY_ENDPOINT is not set")
        return cls(
            analytics_endpoint=endpoint,
            api_key=_env("TELEMETRY_API_KEY"),
            batch_size=safe_int(
                _env("TELEMETRY_BATCH_SIZE"), DEFAULT_BATCH_SIZE,
                logger=logger, context="TELEMETRY_BATCH_SIZE",
            ),
            flush_interval=safe_float(
                _env("TELEMETRY_FLUSH_INTERVAL_SEC"), DEFAULT_FLUSH_INTERVAL_SEC,
                logger=logger, context="TELEMETRY_FLUSH_INTERVAL_SEC",
            ),
            environment=_env("TELEMETRY_ENVIRONMENT") or _env("APP_ENV") or DEFAULT_ENVIRONMENT,
            request_timeout=safe_float(
                _env("TELEMETRY_REQUEST_TIMEOUT_SEC"), DEFAULT_REQUEST_TIMEOUT_SEC,
                logger=logger, context="TELEMETRY_REQUEST_TIMEOUT_SEC",
            ),
        )


__all__ = [
    "MatcherConfig",
    "TrackerConfig",
    "TelemetryConfig",
]
