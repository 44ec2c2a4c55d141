"""Pattern commands: classify a description against the API pattern catalog."""
from __future__ import annotations

import argparse

from cli.core import build_matcher, output_json


def cmd_pattern_search(args: argparse.Namespace) -> None:
    """Rank catalog patterns against a free-text API description."""
    matcher = build_matcher()
    matches = matcher.search(
        args.query,
        limit=args.limit,
        min_similarity=getattr(args, "min_similarity", None),
        categories=getattr(args, "category", None) or None,
    )
    output_json({
        "ok": True,
        "query": args.query,
        "total": len(matches),
        "results": [m.to_dict() for m in matches],
    })


def cmd_pattern_analytics(args: argparse.Namespace) -> None:
    """Catalog size, per-category counts and near-duplicate pattern pairs."""
    matcher = build_matcher()
    output_json({"ok": True, **matcher.get_pattern_analytics()})
