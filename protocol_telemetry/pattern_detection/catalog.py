"""
API Pattern Catalog - named archetypes of API usage with derived vectors.

Unlike discovered clusters, these patterns are curated: each one names a
recurring API shape (bearer auth, pagination, webhooks...) and carries an
importance weight. The catalog owns the vectors; every stored pattern has
a vector of exactly ``embedder.dimensions`` floats.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional, Tuple
from collections import OrderedDict

import numpy as np

from .embedder import Embedder, cosine_similarity
from ..logger import ValidationError, VectorDimensionError


CATEGORIES: Tuple[str, ...] = (
    "authentication",
    "data_access",
    "mutation",
    "streaming",
    "batch",
    "webhook",
)

REDUNDANCY_THRESHOLD = 0.5
MAX_SIMILAR_PAIRS = 10


@dataclass
class APIPattern:
    """A curated API usage archetype."""

    id: str
    pattern: str
    category: str
    description: str
    examples: List[str] = field(default_factory=list)
    weight: float = 1.0

    # Derived from pattern + description unless supplied
    vector: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    def validate(self) -> None:
        """Raise ``ValidationError`` for an empty id, unknown category or non-positive weight."""
        if not self.id:
            raise ValidationError("Pattern id must not be empty")
        if self.category not in CATEGORIES:
            raise ValidationError(
                f"Unknown pattern category {self.category!r}, expected one of {', '.join(CATEGORIES)}"
            )
        if not self.weight > 0:
            raise ValidationError(f"Pattern {self.id} weight must be positive, got {self.weight}")

    def embedding_text(self) -> str:
        return f"{self.pattern} {self.description}"

    def to_dict(self, include_vector: bool = False) -> Dict:
        data = {
            "id": self.id,
            "pattern": self.pattern,
            "category": self.category,
            "description": self.description,
            "examples": list(self.examples),
            "weight": self.weight,
        }
        if include_vector and self.vector is not None:
            data["vector"] = [float(x) for x in self.vector]
        return data


@dataclass(frozen=True)
class SimilarPair:
    pattern1: str
    pattern2: str
    similarity: float


DEFAULT_PATTERNS: List[APIPattern] = [
    APIPattern(
        id="auth_bearer_token",
        pattern="Bearer token authentication",
        category="authentication",
        description="Standard Bearer token authentication pattern",
        examples=[
            "Authorization: Bearer your-token-here",
            'curl -H "Authorization: Bearer ${TOKEN}" api.example.com/data',
        ],
        weight=1.0,
    ),
    APIPattern(
        id="auth_api_key",
        pattern="API key authentication",
        category="authentication",
        description="API key authentication via header or query parameter",
        examples=[
            "X-API-Key: your-api-key",
            "api.example.com/data?api_key=${API_KEY}",
        ],
        weight=1.0,
    ),
    APIPattern(
        id="data_pagination",
        pattern="Paginated data retrieval",
        category="data_access",
        description="Paginated API responses with cursor or offset",
        examples=[
            "GET /api/v1/items?page=1&limit=20",
            "GET /api/v1/items?cursor=abc123&limit=50",
        ],
        weight=0.9,
    ),
    APIPattern(
        id="data_filtering",
        pattern="Data filtering and search",
        category="data_access",
        description="API endpoints with filtering, searching, and querying capabilities",
        examples=[
            "GET /api/v1/users?filter=active&search=john",
            'POST /api/v1/search {"query": "keyword", "filters": {"status": "active"}}',
        ],
        weight=0.8,
    ),
    APIPattern(
        id="streaming_data",
        pattern="Real-time streaming data",
        category="streaming",
        description="Server-sent events or WebSocket streaming",
        examples=[
            "GET /api/v1/stream (text/event-stream)",
            "WebSocket: wss://api.example.com/ws",
        ],
        weight=0.7,
    ),
    APIPattern(
        id="batch_operations",
        pattern="Batch operations",
        category="batch",
        description="Bulk create, update, or delete operations",
        examples=[
            'POST /api/v1/batch {"operations": [{"method": "POST", "path": "/users", "body": {...}}]}',
            'PUT /api/v1/users/bulk {"users": [{"id": 1, "name": "New Name"}]}',
        ],
        weight=0.6,
    ),
    APIPattern(
        id="webhook_endpoints",
        pattern="Webhook registration and management",
        category="webhook",
        description="Webhook configuration and event delivery",
        examples=[
            'POST /api/v1/webhooks {"url": "https://your-app.com/webhook", "events": ["user.created"]}',
            "GET /api/v1/webhooks/{id}/deliveries",
        ],
        weight=0.5,
    ),
]


def default_patterns() -> List[APIPattern]:
    """Fresh copies of the built-in catalog (vectors unset)."""
    return [replace(p, examples=list(p.examples), vector=None) for p in DEFAULT_PATTERNS]


class PatternCatalog:
    """Insertion-ordered registry of ``APIPattern`` keyed by id."""

    def __init__(self, embedder: Embedder):
        self.embedder = embedder
        self._patterns: "OrderedDict[str, APIPattern]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern_id: str) -> bool:
        return pattern_id in self._patterns

    def __iter__(self) -> Iterator[APIPattern]:
        return iter(list(self._patterns.values()))

    def get(self, pattern_id: str) -> Optional[APIPattern]:
        return self._patterns.get(pattern_id)

    def put(self, pattern: APIPattern) -> APIPattern:
        """Insert or replace by id, computing the vector when missing.

        Raises:
            ValidationError: the pattern fails ``APIPattern.validate``
            VectorDimensionError: a supplied vector has the wrong length
        """
        pattern.validate()
        if pattern.vector is None:
            pattern.vector = self.embedder.embed(pattern.embedding_text())
        else:
            vec = np.asarray(pattern.vector, dtype=np.float64)
            if vec.shape != (self.embedder.dimensions,):
                raise VectorDimensionError(
                    f"Pattern {pattern.id} vector has {vec.size} dimensions, "
                    f"catalog uses {self.embedder.dimensions}"
                )
            pattern.vector = vec
        # Replacing an id keeps its original position
        self._patterns[pattern.id] = pattern
        return pattern

    def delete(self, pattern_id: str) -> bool:
        return self._patterns.pop(pattern_id, None) is not None

    def count_by_category(self) -> Dict[str, int]:
        counts = {category: 0 for category in CATEGORIES}
        for pattern in self._patterns.values():
            counts[pattern.category] = counts.get(pattern.category, 0) + 1
        return counts

    def most_similar_pairs(
        self,
        threshold: float = REDUNDANCY_THRESHOLD,
        top_n: int = MAX_SIMILAR_PAIRS,
    ) -> List[SimilarPair]:
        """Pattern-to-pattern pairs above ``threshold``, most similar first.

        Surfaces redundant entries in the catalog.
        """
        patterns = list(self._patterns.values())
        pairs: List[SimilarPair] = []
        for i in range(len(patterns)):
            for j in range(i + 1, len(patterns)):
                sim = cosine_similarity(patterns[i].vector, patterns[j].vector)
                if sim > threshold:
                    pairs.append(SimilarPair(patterns[i].id, patterns[j].id, sim))

        pairs.sort(key=lambda p: -p.similarity)
        return pairs[:top_n]
