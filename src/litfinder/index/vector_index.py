"""Brute-force in-memory cosine similarity index."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import numpy as np

from litfinder.base import LocalStore
from litfinder.exceptions import DimensionMismatch, IndexingCancelled

LOGGER = logging.getLogger(__name__)

REBUILD_REPORT_EVERY = 500


class InMemoryVectorIndex:
    """Mapping of item id to vector with exhaustive top-k search.

    The index is a cache derived from persisted embeddings. It is rebuilt
    wholesale with :func:`rebuild_vector_index` rather than persisted.
    """

    def __init__(self, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension
        self._vectors: Dict[str, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._vectors

    def item_ids(self) -> List[str]:
        return list(self._vectors)

    def clear(self) -> None:
        self._vectors.clear()

    def _validate(self, vector: np.ndarray) -> np.ndarray:
        array = np.asarray(vector, dtype="float32").reshape(-1)
        if array.shape[0] != self.dimension:
            raise DimensionMismatch(self.dimension, array.shape[0])
        return array

    def upsert(self, item_id: str, vector: np.ndarray) -> None:
        self._vectors[item_id] = self._validate(vector).copy()

    def remove(self, item_id: str) -> None:
        self._vectors.pop(item_id, None)

    def search(self, query: np.ndarray, top_k: int) -> List[Tuple[str, float]]:
        """Return up to ``top_k`` ``(item_id, score)`` pairs, best first.

        Equal scores keep insertion order, which callers should not rely on.
        """
        query = self._validate(query)
        if top_k <= 0 or not self._vectors:
            return []

        ids = list(self._vectors)
        matrix = np.vstack([self._vectors[item_id] for item_id in ids]).astype("float64")
        query64 = query.astype("float64")
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query64)
        dots = matrix @ query64
        scores = np.zeros(len(ids), dtype="float64")
        nonzero = norms >= 1e-12
        scores[nonzero] = dots[nonzero] / norms[nonzero]

        order = np.argsort(-scores, kind="stable")[:top_k]
        return [(ids[idx], float(scores[idx])) for idx in order]

    def save(self, path: Path) -> None:
        """No-op: the durable store is the source of truth."""

    def load(self, path: Path) -> None:
        """No-op: use :func:`rebuild_vector_index` instead."""


def rebuild_vector_index(
    store: LocalStore,
    dimension: int,
    *,
    progress: Callable[[int, int], None] | None = None,
    cancel_event: threading.Event | None = None,
    report_every: int = REBUILD_REPORT_EVERY,
) -> InMemoryVectorIndex:
    """Build a fresh index from every persisted embedding of ``dimension``."""
    index = InMemoryVectorIndex(dimension)
    total = store.count_embeddings(dimension)
    stale = store.count_embeddings() - total
    if stale:
        LOGGER.warning(
            "Skipping %d embeddings with a dimension other than %d; re-index those documents",
            stale,
            dimension,
        )

    done = 0
    for chunk_id, vector in store.iter_embeddings(dimension):
        if cancel_event is not None and cancel_event.is_set():
            raise IndexingCancelled()
        index.upsert(chunk_id, vector)
        done += 1
        if progress is not None and done % report_every == 0:
            progress(done, total)

    if progress is not None and (done == 0 or done % report_every != 0):
        progress(done, total)
    LOGGER.info("Vector index rebuilt with %d items", done)
    return index
