"""
Text Embedder - Convert free text to fixed-length vectors.

The matcher never embeds text itself; it calls an ``Embedder``. The only
implementation shipped here, ``HashingEmbedder``, is a PLACEHOLDER for a
real text-embedding model: it hashes bag-of-words tokens into buckets and
knows nothing about meaning. Words that do not literally overlap score 0
unless their hashes collide. Swap in a model-backed ``Embedder`` with the
same ``dimensions`` to get semantic matching without touching the ranking
logic.

Hashing scheme:
- tokens: lowercase ASCII ``[A-Za-z0-9_]+`` runs; any other character,
  accented letters included, separates tokens
- bucket: 32-bit ``h = h * 31 + code`` accumulation over the token's UTF-16
  code units, wrapped to a signed int, ``abs(h) % dimensions``
- weight: every occurrence adds ``1 / sqrt(token_count)``
- the result is L2-normalised; empty text stays all zeros
"""

from abc import ABC, abstractmethod
from typing import List
import math
import re

import numpy as np

from ..logger import VectorDimensionError

_TOKEN_RE = re.compile(r"\w+", re.ASCII)


class Embedder(ABC):
    """Embedding strategy: text in, ``dimensions``-long float vector out."""

    def __init__(self, dimensions: int):
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self.dimensions = dimensions

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        """Return the vector for ``text``. Must be deterministic."""


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


def string_hash(token: str) -> int:
    """Signed 32-bit multiply-by-31 hash over UTF-16 code units.

    Characters outside the BMP contribute their two surrogates separately.
    """
    units = token.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(units), 2):
        h = (h * 31 + (units[i] | units[i + 1] << 8)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


class HashingEmbedder(Embedder):
    """Bag-of-words feature hashing. Not a semantic model."""

    def __init__(self, dimensions: int = 384):
        super().__init__(dimensions)

    def bucket(self, token: str) -> int:
        return abs(string_hash(token)) % self.dimensions

    def embed(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dimensions, dtype=np.float64)
        tokens = tokenize(text)
        if not tokens:
            return vec

        weight = 1.0 / math.sqrt(len(tokens))
        for token in tokens:
            vec[self.bucket(token)] += weight

        norm = np.linalg.norm(vec)
        if norm > 0:
            vec /= norm
        return vec


def cosine_similarity(vec_a, vec_b) -> float:
    """Cosine similarity; 0.0 when either vector has zero magnitude.

    Raises:
        VectorDimensionError: vectors differ in length
    """
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    if a.shape != b.shape:
        raise VectorDimensionError(
            f"Vectors must have the same dimension ({a.shape[0]} != {b.shape[0]})"
        )
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))
