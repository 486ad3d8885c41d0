"""Dictionary-backed store for tests and throwaway sessions."""

from __future__ import annotations

from typing import Dict, Iterator, List, Sequence

import numpy as np

from litfinder.base import LocalStore
from litfinder.models import Chunk, Document


class InMemoryLocalStore(LocalStore):
    """Volatile :class:`LocalStore`; removing a document cascades to its chunks."""

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._chunks: Dict[str, Chunk] = {}
        self._embeddings: Dict[str, np.ndarray] = {}

    def upsert_document(self, document: Document) -> None:
        existing = self._documents.get(document.id)
        if document.content_hash is None and existing is not None:
            document.content_hash = existing.content_hash
        self._documents[document.id] = document

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def remove_document(self, document_id: str) -> bool:
        self.remove_chunks_by_document(document_id)
        return self._documents.pop(document_id, None) is not None

    def list_documents(self) -> List[Document]:
        return sorted(self._documents.values(), key=lambda d: d.last_modified_utc, reverse=True)

    def get_documents_by_content_hash(self, content_hash: str) -> List[Document]:
        return [doc for doc in self.list_documents() if doc.content_hash == content_hash]

    def update_content_hash(self, document_id: str, content_hash: str) -> None:
        document = self._documents.get(document_id)
        if document is not None:
            document.content_hash = content_hash

    def upsert_chunks(self, chunks: Sequence[Chunk]) -> None:
        for chunk in chunks:
            self._chunks[chunk.id] = chunk

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        return self._chunks.get(chunk_id)

    def get_chunks_by_document(self, document_id: str) -> List[Chunk]:
        chunks = [c for c in self._chunks.values() if c.document_id == document_id]
        return sorted(chunks, key=lambda c: c.index_in_document)

    def remove_chunks_by_document(self, document_id: str) -> None:
        for chunk in self.get_chunks_by_document(document_id):
            del self._chunks[chunk.id]
            self._embeddings.pop(chunk.id, None)

    def upsert_embeddings(self, items: Sequence[tuple[str, np.ndarray]]) -> None:
        for chunk_id, vector in items:
            if chunk_id in self._chunks:
                self._embeddings[chunk_id] = np.asarray(vector, dtype="float32").copy()

    def iter_embeddings(self, dimension: int | None = None) -> Iterator[tuple[str, np.ndarray]]:
        for chunk_id in sorted(self._embeddings):
            vector = self._embeddings[chunk_id]
            if dimension is None or vector.size == dimension:
                yield chunk_id, vector

    def count_embeddings(self, dimension: int | None = None) -> int:
        return sum(1 for _ in self.iter_embeddings(dimension))
