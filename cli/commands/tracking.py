"""Tracking commands: replay recorded traffic through an in-memory tracker."""
from __future__ import annotations

import argparse
import json
from pathlib import Path

from cli.core import build_tracker, output_json
from protocol_telemetry.logger import ValidationError, get_logger

logger = get_logger(__name__)

_EVENT_KEYS = ("protocol", "transport", "endpoint", "duration_ms", "session_id",
               "method", "status_code", "metadata")


def cmd_replay(args: argparse.Namespace) -> None:
    """Feed a JSONL file of events to a tracker and print its analytics.

    Each line is a ``track_event`` payload; an optional ``group`` key adds
    the event to that group. Blank lines are skipped.
    """
    path = Path(args.file)
    if not path.is_file():
        raise FileNotFoundError(f"No such file: {path}")

    tracker = build_tracker()
    tracked = 0
    with path.open("r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValidationError(f"{path}:{lineno}: invalid JSON ({e.msg})") from e
            if not isinstance(record, dict):
                raise ValidationError(f"{path}:{lineno}: expected a JSON object")

            event_id = tracker.track_event(**{k: record[k] for k in _EVENT_KEYS if k in record})
            group_id = record.get("group")
            if group_id:
                tracker.add_event_to_group(event_id, str(group_id))
            tracked += 1

    logger.debug("Replayed %d event(s) from %s", tracked, path)

    window = args.window
    if args.group:
        analytics = tracker.get_group_analytics(args.group, window)
    else:
        analytics = tracker.get_analytics(window)

    output_json({
        "ok": True,
        "tracked": tracked,
        "group": args.group,
        "analytics": analytics.to_dict() if analytics is not None else None,
        "stats": tracker.get_stats().to_dict(),
    })
    tracker.shutdown()
