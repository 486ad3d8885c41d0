"""Core LitFinder data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

CHUNK_ID_SEPARATOR = "::chunk::"


def make_chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}{CHUNK_ID_SEPARATOR}{index}"


@dataclass(slots=True)
class Document:
    """An indexed file version.

    ``id`` is stable for one (path, mtime, size) triple; ``content_hash`` is the
    digest of the file bytes and may be shared by several documents.
    """

    id: str
    file_path: Path
    title: str | None
    last_modified_utc: datetime
    file_size_bytes: int
    content_hash: str | None = None

    @property
    def file_name(self) -> str:
        return Path(self.file_path).name


@dataclass(slots=True)
class Chunk:
    """Contiguous span of a document's cleaned text."""

    id: str
    document_id: str
    index_in_document: int
    text: str
    page_start: int | None = None
    page_end: int | None = None


@dataclass(slots=True)
class SearchResult:
    chunk: Chunk
    document: Document
    score: float


@dataclass(slots=True)
class IndexReport:
    """Outcome of indexing a single document."""

    document_id: str
    raw_length: int
    cleaned_length: int
    chunk_count: int
