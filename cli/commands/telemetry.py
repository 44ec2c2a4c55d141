"""Telemetry commands: deliver a journey milestone to the collector."""
from __future__ import annotations

import argparse
import sys
from typing import List

from cli.core import build_telemetry_client, output_json, parse_key_values
from protocol_telemetry.logger import TransportError
from protocol_telemetry.telemetry_client import TelemetryObserver


class _ErrorCollector(TelemetryObserver):
    def __init__(self):
        self.errors: List[TransportError] = []

    def on_error(self, error, payload):
        self.errors.append(error)


def cmd_send_milestone(args: argparse.Namespace) -> None:
    """Record one milestone and flush it before exiting."""
    client = build_telemetry_client(getattr(args, "endpoint", None))
    collector = _ErrorCollector()
    client.subscribe(collector)

    milestone = client.track_milestone(args.milestone_type, parse_key_values(getattr(args, "meta", None)))
    client.shutdown()

    delivered = not collector.errors
    output_json({
        "ok": delivered,
        "milestone": milestone.to_dict(),
        "endpoint": client.config.analytics_endpoint,
        "errors": [str(e) for e in collector.errors],
    })
    if not delivered:
        sys.exit(1)
