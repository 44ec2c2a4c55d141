# API Pattern Matching
# ====================
#
# A curated catalog of API usage archetypes plus a similarity matcher that
# classifies free-text descriptions of traffic against it.
#
# Architecture:
#   1. Embedder / HashingEmbedder - text -> fixed-length vector (pluggable;
#      the hashing version is a bag-of-words placeholder, not a real model)
#   2. PatternCatalog             - id -> APIPattern registry, owns vectors
#   3. SemanticPatternMatcher     - cosine ranking by confidence + notifications
#
# Usage:
#   from protocol_telemetry.pattern_detection import SemanticPatternMatcher
#
#   matcher = SemanticPatternMatcher()
#   matches = matcher.search("Authorization: Bearer abc123", min_similarity=0.1)
#   for m in matches:
#       print(m.pattern.id, m.confidence, m.context.method)

from .embedder import Embedder, HashingEmbedder, cosine_similarity, string_hash, tokenize
from .catalog import (
    APIPattern,
    CATEGORIES,
    DEFAULT_PATTERNS,
    PatternCatalog,
    SimilarPair,
    default_patterns,
)
from .search import (
    LoggingPatternObserver,
    PatternContext,
    PatternMatch,
    PatternMatcherObserver,
    SearchEvent,
    SemanticPatternMatcher,
    extract_context,
    extract_endpoint,
    extract_method,
    extract_parameters,
)

__all__ = [
    # Embedding
    "Embedder",
    "HashingEmbedder",
    "cosine_similarity",
    "string_hash",
    "tokenize",
    # Catalog
    "APIPattern",
    "CATEGORIES",
    "DEFAULT_PATTERNS",
    "PatternCatalog",
    "SimilarPair",
    "default_patterns",
    # Search
    "LoggingPatternObserver",
    "PatternContext",
    "PatternMatch",
    "PatternMatcherObserver",
    "SearchEvent",
    "SemanticPatternMatcher",
    "extract_context",
    "extract_endpoint",
    "extract_method",
    "extract_parameters",
]
