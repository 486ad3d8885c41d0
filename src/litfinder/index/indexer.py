"""Document indexing pipeline."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

from litfinder.base import Embedder, LocalStore, TextExtractor
from litfinder.exceptions import (
    DimensionMismatch,
    ExtractionFailed,
    IndexingCancelled,
    StoreUnavailable,
)
from litfinder.index.vector_index import InMemoryVectorIndex
from litfinder.ingestion.chunker import SentenceChunker
from litfinder.ingestion.cleaner import TextCleaner
from litfinder.ingestion.pdf_loader import DocumentTextExtractor
from litfinder.models import Document, IndexReport
from litfinder.utils.files import (
    compute_sha256,
    iter_document_paths,
    modified_utc,
    stable_document_id,
)

LOGGER = logging.getLogger(__name__)


class DuplicateDecision(str, Enum):
    """What to do with a file whose bytes are already indexed elsewhere."""

    SKIP = "skip"
    INDEX_ANYWAY = "index"
    REPLACE_EXISTING = "replace"


DuplicateResolver = Callable[[Path, List[Document]], DuplicateDecision]
MissingConfirmation = Callable[[List[Document]], bool]
ProgressCallback = Callable[[str], None]


def find_documents(paths: Sequence[Path]) -> list[Path]:
    """Find all indexable files under the given paths."""
    return list(iter_document_paths(paths))


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise IndexingCancelled()


def _drop_chunks(
    store: LocalStore, document_id: str, vector_index: InMemoryVectorIndex | None
) -> None:
    if vector_index is not None:
        for chunk in store.get_chunks_by_document(document_id):
            vector_index.remove(chunk.id)
    store.remove_chunks_by_document(document_id)


def remove_documents(
    store: LocalStore,
    document_ids: Iterable[str],
    vector_index: InMemoryVectorIndex | None = None,
) -> int:
    """Delete documents with their chunks, and their vectors when an index is given."""
    removed = 0
    for document_id in list(document_ids):
        _drop_chunks(store, document_id, vector_index)
        if store.remove_document(document_id):
            removed += 1
    return removed


def remove_missing_documents(
    store: LocalStore,
    confirm: MissingConfirmation | None,
    vector_index: InMemoryVectorIndex | None = None,
) -> int:
    """Remove documents whose file is gone, but only once ``confirm`` agrees.

    Without a confirmation callback nothing is deleted.
    """
    missing = store.find_missing_documents()
    if not missing:
        return 0
    if confirm is None or not confirm(missing):
        LOGGER.info("Kept %d documents with missing files", len(missing))
        return 0
    removed = remove_documents(store, (doc.id for doc in missing), vector_index)
    LOGGER.info("Removed %d documents with missing files", removed)
    return removed


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    processed_files: list[Path] = field(default_factory=list)
    reports: list[IndexReport] = field(default_factory=list)
    errors: Dict[Path, str] = field(default_factory=dict)

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)

    def record_failure(self, path: Path, error: BaseException) -> None:
        self.increment("failed", path)
        self.errors[path] = str(error)


class Indexer:
    """Coordinates extraction, cleaning, chunking, embedding and persistence.

    Every document is rebuilt from scratch on each run: its previous chunks are
    deleted from the store and from the vector index before new ones are made.
    A document cancelled while embedding leaves no vectors in the index; its
    chunks stay in the store without embeddings until the next run.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: LocalStore,
        vector_index: InMemoryVectorIndex,
        *,
        extractor: TextExtractor | None = None,
        cleaner: TextCleaner | None = None,
        chunker: SentenceChunker | None = None,
    ) -> None:
        if embedder.dimension != vector_index.dimension:
            raise DimensionMismatch(vector_index.dimension, embedder.dimension)
        self.embedder = embedder
        self.store = store
        self.vector_index = vector_index
        self.extractor = extractor or DocumentTextExtractor()
        self.cleaner = cleaner or TextCleaner()
        self.chunker = chunker or SentenceChunker()

    def index(
        self,
        paths: Sequence[Path],
        *,
        resolve_duplicate: DuplicateResolver | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IndexStats:
        """Index all supported files found under the given paths.

        Per-file failures are recorded and the batch moves on. Cancellation
        stops the batch and keeps every document finished so far.
        """
        files = find_documents(paths)
        stats = IndexStats()
        if not files:
            LOGGER.warning("No documents found")
            return stats

        notify = progress or (lambda message: None)
        total = len(files)
        for position, path in enumerate(files, start=1):
            if cancel_event is not None and cancel_event.is_set():
                stats.cancelled = True
                break

            notify(f"[{position}/{total}] Indexing {path.name}")
            try:
                status = self._index_file(path, resolve_duplicate, cancel_event, stats)
            except IndexingCancelled:
                stats.cancelled = True
                break
            except (StoreUnavailable, DimensionMismatch):
                raise
            except ExtractionFailed as exc:
                LOGGER.error("%s", exc)
                stats.record_failure(path, exc)
                notify(f"[{position}/{total}] Failed {path.name}: {exc}")
            except Exception as exc:
                LOGGER.error("Failed to process %s: %s", path, exc)
                stats.record_failure(path, exc)
                notify(f"[{position}/{total}] Failed {path.name}: {exc}")
            else:
                stats.increment(status, path)
                notify(f"[{position}/{total}] {status.capitalize()} {path.name}")

        if stats.cancelled:
            LOGGER.info("Indexing cancelled after %d files", len(stats.processed_files))
            notify("Indexing cancelled")
        return stats

    def _index_file(
        self,
        path: Path,
        resolve_duplicate: DuplicateResolver | None,
        cancel_event: threading.Event | None,
        stats: IndexStats,
    ) -> str:
        content_hash = compute_sha256(path)
        document_id = stable_document_id(path)

        duplicates = [
            doc
            for doc in self.store.get_documents_by_content_hash(content_hash)
            if doc.id != document_id and Path(doc.file_path) != path
        ]
        if duplicates:
            decision = (
                resolve_duplicate(path, duplicates)
                if resolve_duplicate is not None
                else DuplicateDecision.SKIP
            )
            LOGGER.info(
                "%s duplicates %d indexed document(s); decision: %s",
                path,
                len(duplicates),
                decision.value,
            )
            if decision is DuplicateDecision.SKIP:
                return "skipped"
            if decision is DuplicateDecision.REPLACE_EXISTING:
                self.remove_documents(doc.id for doc in duplicates)

        existed = self.store.get_document(document_id) is not None
        report = self.index_document(path, cancel_event=cancel_event)
        self.store.update_content_hash(report.document_id, content_hash)
        self._remove_superseded(path, report.document_id)
        stats.reports.append(report)
        return "updated" if existed else "inserted"

    def index_document(
        self, path: Path, *, cancel_event: threading.Event | None = None
    ) -> IndexReport:
        """Run one file through the full pipeline and return its report."""
        path = Path(path).resolve()
        document_id = stable_document_id(path)
        document = Document(
            id=document_id,
            file_path=path,
            title=path.stem,
            last_modified_utc=modified_utc(path),
            file_size_bytes=path.stat().st_size,
        )
        self.store.upsert_document(document)
        self._drop_chunks(document_id)

        try:
            raw_text = self.extractor.extract(path, cancel_event)
        except (ExtractionFailed, IndexingCancelled):
            raise
        except Exception as exc:
            raise ExtractionFailed(path.name, exc) from exc

        cleaned = self.cleaner.clean(raw_text)
        chunks = self.chunker.chunk(document_id, cleaned)
        self.store.upsert_chunks(chunks)

        embeddings = []
        try:
            for chunk in chunks:
                _check_cancelled(cancel_event)
                vector = self.embedder.embed_text(chunk.text)
                self.vector_index.upsert(chunk.id, vector)
                embeddings.append((chunk.id, vector))
        except IndexingCancelled:
            for chunk_id, _ in embeddings:
                self.vector_index.remove(chunk_id)
            raise
        self.store.upsert_embeddings(embeddings)

        LOGGER.info("Indexed %s: %d chunks", path, len(chunks))
        return IndexReport(
            document_id=document_id,
            raw_length=len(raw_text),
            cleaned_length=len(cleaned),
            chunk_count=len(chunks),
        )

    def remove_documents(self, document_ids: Iterable[str]) -> int:
        """Delete documents from the store and their vectors from the index."""
        return remove_documents(self.store, document_ids, self.vector_index)

    def remove_missing(self, confirm: MissingConfirmation | None = None) -> int:
        return remove_missing_documents(self.store, confirm, self.vector_index)

    def _drop_chunks(self, document_id: str) -> None:
        _drop_chunks(self.store, document_id, self.vector_index)

    def _remove_superseded(self, path: Path, document_id: str) -> None:
        stale = [
            doc.id
            for doc in self.store.get_documents_by_path(path)
            if doc.id != document_id
        ]
        if stale:
            LOGGER.info("Removing %d older version(s) of %s", len(stale), path)
            self.remove_documents(stale)
