"""FastAPI application exposing LitFinder search and indexing over HTTP."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from litfinder.base import Embedder
from litfinder.config import AppConfig
from litfinder.embedding.encoder import create_embedder
from litfinder.exceptions import StoreUnavailable
from litfinder.index.indexer import (
    DuplicateDecision,
    Indexer,
    remove_documents,
    remove_missing_documents,
)
from litfinder.index.search import Searcher, normalize_scores
from litfinder.index.storage import SQLiteLocalStore
from litfinder.index.vector_index import InMemoryVectorIndex, rebuild_vector_index
from litfinder.models import Document

LOGGER = logging.getLogger(__name__)

_VECTOR_INDEXES: Dict[Tuple[Path, int], InMemoryVectorIndex] = {}
_VECTOR_INDEX_LOCK = threading.Lock()

app = FastAPI(title="LitFinder Web", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    db: Path | None = None
    top_k: int = 10


class SearchHit(BaseModel):
    document_id: str
    path: str
    title: str | None
    chunk_id: str
    chunk_index: int
    text: str
    score: float
    relevance: float


class IndexPayload(BaseModel):
    paths: List[str]
    db: str | None = None
    on_duplicate: DuplicateDecision = DuplicateDecision.SKIP


def _resolve_db_path(db: Path | None) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=2)
def _get_embedder(model_name: str, kind: str) -> Embedder:
    return create_embedder(AppConfig(model_name=model_name, embedder=kind))


def _default_embedder() -> Embedder:
    config = AppConfig()
    return _get_embedder(config.model_name, config.embedder)


def _open_store(db_path: Path) -> SQLiteLocalStore:
    try:
        return SQLiteLocalStore(db_path)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@contextmanager
def _store_session(db_path: Path) -> Iterator[SQLiteLocalStore]:
    store = _open_store(db_path)
    try:
        yield store
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    finally:
        store.close()


def _get_vector_index(
    store: SQLiteLocalStore, db_path: Path, dimension: int
) -> InMemoryVectorIndex:
    """Return the cached index for a database, rebuilding it from the store on a miss."""
    key = (db_path, dimension)
    with _VECTOR_INDEX_LOCK:
        vector_index = _VECTOR_INDEXES.get(key)
        if vector_index is None:
            vector_index = rebuild_vector_index(store, dimension)
            _VECTOR_INDEXES[key] = vector_index
            LOGGER.info("Loaded %d vectors from %s", len(vector_index), db_path)
    return vector_index


def _invalidate_vector_index(db_path: Path) -> None:
    with _VECTOR_INDEX_LOCK:
        for key in [key for key in _VECTOR_INDEXES if key[0] == db_path]:
            del _VECTOR_INDEXES[key]


def _document_payload(doc: Document) -> dict[str, Any]:
    return {
        "id": doc.id,
        "path": str(doc.file_path),
        "file_name": doc.file_name,
        "title": doc.title,
        "last_modified_utc": doc.last_modified_utc.isoformat(),
        "file_size_bytes": doc.file_size_bytes,
        "content_hash": doc.content_hash,
    }


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, List[SearchHit]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    top_k = max(1, min(payload.top_k, 50))

    resolved_db = _resolve_db_path(payload.db)
    if not resolved_db.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Database not found at {resolved_db}. Index some documents first.",
        )

    embedder = _default_embedder()
    with _store_session(resolved_db) as store:
        vector_index = _get_vector_index(store, resolved_db, embedder.dimension)
        results = Searcher(embedder, vector_index, store).search(query, top_k=top_k)

    hits = [
        SearchHit(
            document_id=result.document.id,
            path=str(result.document.file_path),
            title=result.document.title,
            chunk_id=result.chunk.id,
            chunk_index=result.chunk.index_in_document,
            text=result.chunk.text,
            score=result.score,
            relevance=relevance,
        )
        for result, relevance in zip(results, normalize_scores(results))
    ]
    return {"results": hits}


@app.get("/documents")
async def list_documents(db: Path | None = None) -> dict[str, Any]:
    """List all indexed documents in the database."""
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        return {
            "documents": [],
            "stats": {
                "document_count": 0,
                "chunk_count": 0,
                "embedding_count": 0,
                "total_size_bytes": 0,
            },
        }

    with _store_session(resolved_db) as store:
        documents = [_document_payload(doc) for doc in store.list_documents()]
        stats = store.get_stats()

    return {"documents": documents, "stats": stats}


@app.delete("/documents/cleanup")
async def cleanup_missing_files(db: Path | None = None) -> dict[str, Any]:
    """Remove documents whose files no longer exist on disk."""
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        raise HTTPException(status_code=404, detail="Database not found")

    with _store_session(resolved_db) as store:
        removed_count = remove_missing_documents(store, lambda missing: True)
    _invalidate_vector_index(resolved_db)

    return {"status": "ok", "removed_count": removed_count}


@app.delete("/documents/{doc_id}")
async def delete_document_by_id(doc_id: str, db: Path | None = None) -> dict[str, Any]:
    """Delete a document by its ID."""
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        raise HTTPException(status_code=404, detail="Database not found")

    with _store_session(resolved_db) as store:
        deleted = remove_documents(store, [doc_id])
    _invalidate_vector_index(resolved_db)

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document with ID {doc_id} not found")

    return {"status": "ok", "deleted_id": doc_id}


def _run_index_job(
    paths: List[Path], resolved_db: Path, on_duplicate: DuplicateDecision
) -> dict[str, Any]:
    embedder = _default_embedder()
    store = SQLiteLocalStore(resolved_db)
    indexer = Indexer(embedder, store, InMemoryVectorIndex(embedder.dimension))
    try:
        stats = indexer.index(paths, resolve_duplicate=lambda path, matches: on_duplicate)
    finally:
        store.close()

    return {
        "inserted": stats.inserted,
        "updated": stats.updated,
        "skipped": stats.skipped,
        "failed": stats.failed,
        "cancelled": stats.cancelled,
        "processed_files": [str(path) for path in stats.processed_files],
        "errors": {str(path): message for path, message in stats.errors.items()},
    }


@app.post("/index")
async def index_documents(payload: IndexPayload) -> dict[str, Any]:
    if not payload.paths:
        raise HTTPException(status_code=400, detail="No path provided")

    resolved_paths = []
    for raw in payload.paths:
        clean_path = raw.strip().replace("\r", "").replace("\n", "")
        if not clean_path:
            continue
        if "\0" in clean_path:
            raise HTTPException(status_code=400, detail="Invalid path: contains null byte")

        validated_path = Path(os.path.realpath(os.path.expanduser(clean_path)))
        if not validated_path.exists():
            raise HTTPException(status_code=404, detail=f"Path not found: {clean_path}")
        resolved_paths.append(validated_path)

    if not resolved_paths:
        raise HTTPException(status_code=400, detail="No path provided")

    resolved_db = _resolve_db_path(Path(payload.db) if payload.db is not None else None)
    _ensure_db_parent(resolved_db)

    try:
        stats = await asyncio.to_thread(
            _run_index_job, resolved_paths, resolved_db, payload.on_duplicate
        )
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - defensive
        LOGGER.exception("Indexing failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        _invalidate_vector_index(resolved_db)

    return {"status": "ok", "db": str(resolved_db), "stats": stats}
