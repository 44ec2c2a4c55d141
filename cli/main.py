"""CLI entry point: argparse dispatcher for all subcommands."""
from __future__ import annotations

import argparse
import json
import sys
import traceback


# ---------------------------------------------------------------------------
# Command registry: command name → (module_path, function_name)
# Lazy-imported at dispatch time to keep startup fast.
# ---------------------------------------------------------------------------
COMMANDS = {
    "pattern-search":    ("cli.commands.pattern",   "cmd_pattern_search"),
    "pattern-analytics": ("cli.commands.pattern",   "cmd_pattern_analytics"),
    "replay":            ("cli.commands.tracking",  "cmd_replay"),
    "send-milestone":    ("cli.commands.telemetry", "cmd_send_milestone"),
}


# ---------------------------------------------------------------------------
# Parser builder
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    from cli._version import __version__
    from protocol_telemetry.pattern_detection import CATEGORIES
    from protocol_telemetry.telemetry_client import MILESTONE_TYPES

    parser = argparse.ArgumentParser(
        prog="protocol-telemetry",
        description="Protocol telemetry CLI: pattern matching, traffic replay, journey milestones",
    )
    parser.add_argument("--debug", action="store_true", help="Show stack traces on error")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    # pattern-search
    p = sub.add_parser("pattern-search", help="Rank API patterns against a description")
    p.add_argument("query", help="Free-text API description")
    p.add_argument("-l", "--limit", type=int, default=5, help="Max results")
    p.add_argument("--min-similarity", type=float, default=None,
                   help="Min cosine similarity (default: PATTERN_SIMILARITY_THRESHOLD)")
    p.add_argument("--category", nargs="+", choices=list(CATEGORIES), help="Restrict to categories")

    # pattern-analytics
    sub.add_parser("pattern-analytics", help="Catalog size, categories and near-duplicates")

    # replay
    p = sub.add_parser("replay", help="Replay a JSONL event log and print analytics")
    p.add_argument("file", help="JSONL file of track_event payloads")
    p.add_argument("--group", help="Report analytics for this group only")
    p.add_argument("--window", type=float, default=24, help="Time window in hours")

    # send-milestone
    p = sub.add_parser("send-milestone", help="Send one journey milestone to the collector")
    p.add_argument("milestone_type", choices=list(MILESTONE_TYPES), help="Milestone type")
    p.add_argument("--endpoint", help="Collector URL (default: TELEMETRY_ENDPOINT)")
    p.add_argument("--meta", nargs="+", metavar="KEY=VALUE", help="Milestone metadata")

    return parser


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------
def main() -> None:
    parser = build_parser()
    argv = sys.argv[1:]
    debug = False
    if "--debug" in argv:
        debug = True
        argv = [arg for arg in argv if arg != "--debug"]
    args = parser.parse_args(argv)
    args.debug = bool(debug or getattr(args, "debug", False))

    entry = COMMANDS.get(args.command)
    if not entry:
        parser.print_help()
        sys.exit(1)

    mod_path, fn_name = entry
    try:
        import importlib
        mod = importlib.import_module(mod_path)
        fn = getattr(mod, fn_name)
        fn(args)
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as exc:
        json.dump({"ok": False, "error": str(exc)}, sys.stdout, default=str)
        sys.stdout.write("\n")
        if args.debug:
            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
