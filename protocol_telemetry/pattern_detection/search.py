"""
Pattern Search - rank catalog patterns against a free-text description.

This module provides the query side of the pattern catalog:

1. Embedder - turns the query into a vector (hash placeholder by default)
2. PatternCatalog - the curated patterns and their vectors
3. SemanticPatternMatcher - cosine ranking, thresholding and notifications
4. Context extraction - best-effort endpoint / method / parameters parsing

Ranking is by confidence (similarity * pattern weight), not raw similarity,
so a heavier pattern can outrank a slightly closer one.
"""

from __future__ import annotations

import copy
import json
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import unquote

import numpy as np

from .catalog import APIPattern, PatternCatalog, default_patterns
from .embedder import Embedder, HashingEmbedder, cosine_similarity
from ..config import MatcherConfig
from ..logger import ContextLogger, VectorDimensionError, get_logger
from ..observers import ObserverRegistry
from ..scheduling import epoch_ms, utc_now

logger = get_logger(__name__)

DEFAULT_LIMIT = 5

_ENDPOINT_RE = re.compile(r"/api/\S+")
_METHOD_RE = re.compile(r"\b(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\b", re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{[^}]+\}")
_QUERY_STRING_RE = re.compile(r"\?([^}\s]+)")


# =============================================================================
# Result types
# =============================================================================

@dataclass
class PatternContext:
    """Best-effort request shape pulled out of the query text."""
    endpoint: Optional[str] = None
    method: str = "GET"
    parameters: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"endpoint": self.endpoint, "method": self.method, "parameters": self.parameters}

    def copy(self) -> PatternContext:
        return PatternContext(self.endpoint, self.method, copy.deepcopy(self.parameters))


@dataclass
class PatternMatch:
    pattern: APIPattern
    similarity: float
    confidence: float
    context: PatternContext = field(default_factory=PatternContext)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict(),
            "similarity": round(self.similarity, 6),
            "confidence": round(self.confidence, 6),
            "context": self.context.to_dict(),
        }


@dataclass
class SearchEvent:
    query: str
    matches: List[PatternMatch]
    query_vector: np.ndarray
    timestamp: str
    session_id: str


# =============================================================================
# Context extraction
# =============================================================================

def extract_endpoint(query: str) -> Optional[str]:
    m = _ENDPOINT_RE.search(query or "")
    return m.group(0) if m else None


def extract_method(query: str) -> str:
    m = _METHOD_RE.search(query or "")
    return m.group(0).upper() if m else "GET"


def extract_parameters(query: str) -> Optional[Dict[str, Any]]:
    """JSON object body first, then a ``?k=v&...`` query string."""
    query = query or ""
    json_match = _JSON_OBJECT_RE.search(query)
    if json_match:
        try:
            parsed = json.loads(json_match.group(0))
            if isinstance(parsed, dict):
                return parsed
        except ValueError:
            logger.debug("Ignoring unparseable JSON fragment in query")

    qs_match = _QUERY_STRING_RE.search(query)
    if qs_match:
        params: Dict[str, str] = {}
        for pair in qs_match.group(1).split("&"):
            key, _, value = pair.partition("=")
            if key and value:
                params[key] = unquote(value)
        return params or None

    return None


def extract_context(query: str) -> PatternContext:
    return PatternContext(
        endpoint=extract_endpoint(query),
        method=extract_method(query),
        parameters=extract_parameters(query),
    )


# =============================================================================
# Observers
# =============================================================================

class PatternMatcherObserver:
    """Override the callbacks you care about; the defaults do nothing."""

    def on_pattern_added(self, pattern: APIPattern) -> None:
        pass

    def on_pattern_removed(self, pattern_id: str) -> None:
        pass

    def on_search(self, event: SearchEvent) -> None:
        pass


class LoggingPatternObserver(PatternMatcherObserver):
    """Writes matcher notifications as structured log lines."""

    def __init__(self, log: Optional[ContextLogger] = None):
        self.log = log or ContextLogger(get_logger("protocol_telemetry.patterns", json_format=True),
                                        component="pattern_matcher")

    def on_pattern_added(self, pattern: APIPattern) -> None:
        self.log.info("pattern_added", pattern_id=pattern.id, category=pattern.category)

    def on_pattern_removed(self, pattern_id: str) -> None:
        self.log.info("pattern_removed", pattern_id=pattern_id)

    def on_search(self, event: SearchEvent) -> None:
        self.log.info(
            "search",
            session_id=event.session_id,
            query=event.query,
            matches=[m.pattern.id for m in event.matches],
        )


# =============================================================================
# Matcher
# =============================================================================

class SemanticPatternMatcher:
    """Answers "which known API patterns resemble this text?".

    Thread-safe: the catalog is guarded by a single lock; notifications are
    delivered after the lock is released, in call order per thread.
    """

    def __init__(
        self,
        config: Optional[MatcherConfig] = None,
        embedder: Optional[Embedder] = None,
        seed_defaults: bool = True,
    ):
        self.config = config or MatcherConfig()
        self.embedder = embedder or HashingEmbedder(self.config.vector_dimensions)
        if self.embedder.dimensions != self.config.vector_dimensions:
            raise VectorDimensionError(
                f"Embedder produces {self.embedder.dimensions} dimensions, "
                f"config expects {self.config.vector_dimensions}"
            )
        self.catalog = PatternCatalog(self.embedder)
        self.observers: ObserverRegistry[PatternMatcherObserver] = ObserverRegistry("pattern_matcher")
        self._lock = threading.RLock()

        if seed_defaults:
            # Seeding is silent: nobody can be subscribed yet
            for pattern in default_patterns():
                self.catalog.put(pattern)

    @property
    def similarity_threshold(self) -> float:
        return self.config.similarity_threshold

    def subscribe(self, observer: PatternMatcherObserver) -> None:
        self.observers.subscribe(observer)

    def unsubscribe(self, observer: PatternMatcherObserver) -> bool:
        return self.observers.unsubscribe(observer)

    # ------------------------------------------------------------------
    # Catalog maintenance
    # ------------------------------------------------------------------

    def add_pattern(self, pattern: APIPattern) -> APIPattern:
        """Insert or replace a pattern by id (last write wins)."""
        with self._lock:
            stored = self.catalog.put(pattern)
        logger.debug("Added pattern %s (%s)", stored.id, stored.category)
        self.observers.notify(lambda o: o.on_pattern_added(stored), "pattern_added")
        return stored

    def remove_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            removed = self.catalog.delete(pattern_id)
        if removed:
            logger.debug("Removed pattern %s", pattern_id)
            self.observers.notify(lambda o: o.on_pattern_removed(pattern_id), "pattern_removed")
        return removed

    def get_pattern(self, pattern_id: str) -> Optional[APIPattern]:
        with self._lock:
            return self.catalog.get(pattern_id)

    def patterns(self) -> List[APIPattern]:
        with self._lock:
            return list(self.catalog)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        min_similarity: Optional[float] = None,
        categories: Optional[Iterable[str]] = None,
        session_id: Optional[str] = None,
    ) -> List[PatternMatch]:
        """Rank catalog patterns against ``query``.

        Args:
            query: Free-text description of an API call or usage
            limit: Max matches returned
            min_similarity: Cosine floor; ``None`` uses ``similarity_threshold``
            categories: Only consider patterns in these categories
            session_id: Carried on the search notification

        Returns:
            Matches sorted by confidence, highest first (possibly empty)
        """
        floor = self.similarity_threshold if min_similarity is None else min_similarity
        wanted = set(categories) if categories is not None else None
        now = utc_now()
        session_id = session_id or f"search_{epoch_ms(now)}"

        query_vector = self.embedder.embed(query)
        context = extract_context(query)

        matches: List[PatternMatch] = []
        with self._lock:
            for pattern in self.catalog:
                if wanted is not None and pattern.category not in wanted:
                    continue
                similarity = cosine_similarity(query_vector, pattern.vector)
                if similarity >= floor:
                    matches.append(PatternMatch(
                        pattern=pattern,
                        similarity=similarity,
                        confidence=similarity * pattern.weight,
                        context=context.copy(),
                    ))

        matches.sort(key=lambda m: -m.confidence)
        matches = matches[:max(0, limit)]

        logger.debug("Search %r matched %d pattern(s)", query, len(matches))
        event = SearchEvent(
            query=query,
            matches=matches,
            query_vector=query_vector,
            timestamp=now.isoformat(),
            session_id=session_id,
        )
        self.observers.notify(lambda o: o.on_search(event), "search")
        return matches

    def get_pattern_analytics(self) -> Dict[str, Any]:
        with self._lock:
            total = len(self.catalog)
            by_category = self.catalog.count_by_category()
            pairs = self.catalog.most_similar_pairs()
        return {
            "total_patterns": total,
            "patterns_by_category": by_category,
            "most_similar_patterns": [
                {"pattern1": p.pattern1, "pattern2": p.pattern2, "similarity": p.similarity}
                for p in pairs
            ],
        }
