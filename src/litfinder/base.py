"""Abstract interfaces for the swappable pipeline collaborators.

Indexing and search code depend only on these classes, so a deterministic
stub can stand in for the neural runtime or the SQLite store in tests.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import numpy as np

from litfinder.models import Chunk, Document


class TextExtractor(ABC):
    """Turns a source file into raw text."""

    @abstractmethod
    def extract(self, path: Path, cancel_event: threading.Event | None = None) -> str:
        """Return the raw text of ``path``.

        Raises:
            ExtractionFailed: the file is unreadable or malformed.
            IndexingCancelled: ``cancel_event`` was set while extracting.
        """


class Embedder(ABC):
    """Maps text to fixed-length vectors.

    Implementations must be deterministic for identical input during the
    lifetime of one instance.
    """

    dimension: int

    @abstractmethod
    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return a float32 matrix of shape ``(len(texts), dimension)``."""

    def embed_text(self, text: str) -> np.ndarray:
        """Embed a single text."""
        return self.embed([text])[0]


class LocalStore(ABC):
    """Durable record of documents, chunks and chunk embeddings."""

    # Documents
    @abstractmethod
    def upsert_document(self, document: Document) -> None: ...

    @abstractmethod
    def get_document(self, document_id: str) -> Document | None: ...

    @abstractmethod
    def remove_document(self, document_id: str) -> bool:
        """Delete a document and its chunks. Returns whether it existed."""

    @abstractmethod
    def list_documents(self) -> list[Document]: ...

    @abstractmethod
    def get_documents_by_content_hash(self, content_hash: str) -> list[Document]: ...

    @abstractmethod
    def update_content_hash(self, document_id: str, content_hash: str) -> None: ...

    # Chunks
    @abstractmethod
    def upsert_chunks(self, chunks: Sequence[Chunk]) -> None:
        """Persist a chunk batch atomically."""

    @abstractmethod
    def get_chunk(self, chunk_id: str) -> Chunk | None: ...

    @abstractmethod
    def get_chunks_by_document(self, document_id: str) -> list[Chunk]: ...

    @abstractmethod
    def remove_chunks_by_document(self, document_id: str) -> None: ...

    # Embeddings
    @abstractmethod
    def upsert_embeddings(self, items: Sequence[tuple[str, np.ndarray]]) -> None:
        """Attach vectors to existing chunks atomically."""

    @abstractmethod
    def iter_embeddings(self, dimension: int | None = None) -> Iterator[tuple[str, np.ndarray]]:
        """Yield ``(chunk_id, vector)`` pairs, optionally of one dimension only."""

    @abstractmethod
    def count_embeddings(self, dimension: int | None = None) -> int: ...

    def get_documents_by_path(self, path: Path) -> list[Document]:
        """Every indexed version of the file at ``path``."""
        target = Path(path)
        return [doc for doc in self.list_documents() if Path(doc.file_path) == target]

    def find_missing_documents(self) -> list[Document]:
        """Documents whose backing file no longer exists on disk."""
        return [doc for doc in self.list_documents() if not Path(doc.file_path).exists()]

    def get_stats(self) -> dict[str, int]:
        documents = self.list_documents()
        chunk_count = sum(len(self.get_chunks_by_document(doc.id)) for doc in documents)
        return {
            "document_count": len(documents),
            "chunk_count": chunk_count,
            "embedding_count": self.count_embeddings(),
            "total_size_bytes": sum(doc.file_size_bytes for doc in documents),
        }

    def close(self) -> None:
        """Release underlying resources."""
