"""Shared helpers for CLI commands."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Ensure project root is on sys.path (fallback for development mode)
try:
    import protocol_telemetry.config  # noqa: F401
except ImportError:
    ROOT_DIR = Path(__file__).resolve().parent.parent
    if str(ROOT_DIR) not in sys.path:
        sys.path.insert(0, str(ROOT_DIR))

from protocol_telemetry.config import MatcherConfig, TelemetryConfig, TrackerConfig
from protocol_telemetry.pattern_detection import SemanticPatternMatcher
from protocol_telemetry.scheduling import ManualScheduler
from protocol_telemetry.telemetry_client import TelemetryClient
from protocol_telemetry.tracking import ProtocolTracker

# CLI runs are short-lived: pick up a local .env once, never override real env
load_dotenv(override=False)


def build_matcher() -> SemanticPatternMatcher:
    return SemanticPatternMatcher(MatcherConfig.from_env())


def build_tracker() -> ProtocolTracker:
    # Virtual-time scheduler: no background sweep thread for a one-shot command
    return ProtocolTracker(TrackerConfig.from_env(), scheduler=ManualScheduler())


def build_telemetry_client(endpoint: Optional[str] = None) -> TelemetryClient:
    # Inline scheduler: immediate flushes happen inside the calling command
    return TelemetryClient(TelemetryConfig.from_env(endpoint), scheduler=ManualScheduler())


def parse_key_values(pairs: Optional[List[str]]) -> Dict[str, str]:
    """``["a=1", "b=two"]`` -> ``{"a": "1", "b": "two"}``."""
    out: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        out[key] = value
    return out


def output_json(data: Any) -> None:
    """Write JSON to stdout; single place for all commands."""
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
