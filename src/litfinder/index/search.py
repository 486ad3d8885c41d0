"""Semantic search interface."""

from __future__ import annotations

import logging
from typing import List, Sequence

from litfinder.base import Embedder, LocalStore
from litfinder.index.vector_index import InMemoryVectorIndex
from litfinder.models import SearchResult

LOGGER = logging.getLogger(__name__)

SCORE_FLOOR = 1e-6


def normalize_scores(results: Sequence[SearchResult], *, floor: float = SCORE_FLOOR) -> List[float]:
    """Min-max rescale the scores of one result set to [0, 1] for display."""
    if not results:
        return []
    scores = [result.score for result in results]
    low, high = min(scores), max(scores)
    span = max(high - low, floor)
    return [(score - low) / span for score in scores]


class Searcher:
    """High-level API to query the vector index and hydrate hits from the store."""

    def __init__(self, embedder: Embedder, vector_index: InMemoryVectorIndex, store: LocalStore) -> None:
        self.embedder = embedder
        self.vector_index = vector_index
        self.store = store

    def search(self, query: str, *, top_k: int = 10) -> List[SearchResult]:
        if not query or not query.strip():
            return []

        embedding = self.embedder.embed_text(query)
        hits = self.vector_index.search(embedding, top_k)

        results: List[SearchResult] = []
        for chunk_id, score in hits:
            chunk = self.store.get_chunk(chunk_id)
            if chunk is None:
                LOGGER.debug("Dropping hit %s: chunk no longer stored", chunk_id)
                continue
            document = self.store.get_document(chunk.document_id)
            if document is None:
                LOGGER.debug("Dropping hit %s: document %s no longer stored", chunk_id, chunk.document_id)
                continue
            results.append(SearchResult(chunk=chunk, document=document, score=score))
        return results
