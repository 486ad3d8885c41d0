"""Deterministic hash-based embedder for tests and offline use."""

from __future__ import annotations

import hashlib
from typing import Iterable, Sequence

import numpy as np

from litfinder.base import Embedder

DEFAULT_DIMENSION = 384


class HashEmbedder(Embedder):
    """Expands the SHA256 digest of the text into a unit vector.

    Identical texts always map to identical vectors; there is no semantic
    similarity between different texts.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        rows = [self._embed_one(text) for text in texts]
        if not rows:
            return np.empty((0, self.dimension), dtype="float32")
        return np.vstack(rows)

    def _embed_one(self, text: str) -> np.ndarray:
        digest = np.frombuffer(hashlib.sha256((text or "").encode("utf-8")).digest(), dtype=np.uint8)
        repeated = np.resize(digest, self.dimension).astype("float32")
        vector = repeated / 255.0 * 2.0 - 1.0
        norm = float(np.linalg.norm(vector))
        if norm >= 1e-12:
            vector = vector / norm
        return vector.astype("float32")
