"""SQLite persistence for documents, chunks and chunk embeddings."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Sequence

import numpy as np

from litfinder.base import LocalStore
from litfinder.exceptions import StoreUnavailable
from litfinder.models import Chunk, Document

LOGGER = logging.getLogger(__name__)

EMBEDDING_DTYPE = np.dtype("<f4")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    title TEXT NULL,
    last_modified_utc TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    file_name TEXT NULL,
    content_hash TEXT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_file_name ON documents(file_name);
CREATE INDEX IF NOT EXISTS idx_documents_content_hash ON documents(content_hash);

CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    index_in_document INTEGER NOT NULL,
    text TEXT NOT NULL,
    page_start INTEGER NULL,
    page_end INTEGER NULL,
    embedding BLOB NULL,
    embedding_dim INTEGER NULL,
    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_chunks_document_id ON chunks(document_id);
CREATE INDEX IF NOT EXISTS idx_chunks_has_embedding ON chunks(embedding_dim);
"""

_DOCUMENT_COLUMNS = "id, file_path, title, last_modified_utc, file_size_bytes, content_hash"
_CHUNK_COLUMNS = "id, document_id, index_in_document, text, page_start, page_end"


def encode_embedding(vector: np.ndarray) -> bytes:
    """Raw little-endian float32 bytes, 4 bytes per component."""
    return np.asarray(vector, dtype=EMBEDDING_DTYPE).reshape(-1).tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    if len(blob) % EMBEDDING_DTYPE.itemsize != 0:
        raise ValueError("Invalid embedding blob length")
    return np.frombuffer(blob, dtype=EMBEDDING_DTYPE).astype("float32")


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        file_path=Path(row["file_path"]),
        title=row["title"],
        last_modified_utc=datetime.fromisoformat(row["last_modified_utc"]),
        file_size_bytes=row["file_size_bytes"],
        content_hash=row["content_hash"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        index_in_document=row["index_in_document"],
        text=row["text"],
        page_start=row["page_start"],
        page_end=row["page_end"],
    )


class SQLiteLocalStore(LocalStore):
    """Persistence layer backed by one long-lived SQLite connection.

    Batch writes go through :meth:`transaction`, which commits on success and
    rolls back on any exception, so a document never keeps a partial chunk set.
    Reads and writes report database failures as :class:`StoreUnavailable`.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON;")
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open store at {self.db_path}: {exc}") from exc

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteLocalStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.OperationalError as exc:
            self._conn.rollback()
            raise StoreUnavailable(str(exc)) from exc
        except Exception:
            self._conn.rollback()
            raise

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def _fetchone(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Row | None:
        with self._read() as conn:
            return conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Sequence[object] = ()) -> List[sqlite3.Row]:
        with self._read() as conn:
            return conn.execute(sql, params).fetchall()

    # Documents

    def upsert_document(self, document: Document) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents(id, file_path, title, last_modified_utc,
                                      file_size_bytes, file_name, content_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    file_path = excluded.file_path,
                    title = excluded.title,
                    last_modified_utc = excluded.last_modified_utc,
                    file_size_bytes = excluded.file_size_bytes,
                    file_name = excluded.file_name,
                    content_hash = COALESCE(excluded.content_hash, documents.content_hash)
                """,
                (
                    document.id,
                    str(document.file_path),
                    document.title,
                    document.last_modified_utc.isoformat(),
                    document.file_size_bytes,
                    document.file_name,
                    document.content_hash,
                ),
            )

    def get_document(self, document_id: str) -> Document | None:
        row = self._fetchone(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        )
        return _row_to_document(row) if row else None

    def remove_document(self, document_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cursor.rowcount > 0

    def list_documents(self) -> List[Document]:
        rows = self._fetchall(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY last_modified_utc DESC"
        )
        return [_row_to_document(row) for row in rows]

    def get_documents_by_content_hash(self, content_hash: str) -> List[Document]:
        rows = self._fetchall(
            f"""
            SELECT {_DOCUMENT_COLUMNS} FROM documents
            WHERE content_hash = ?
            ORDER BY last_modified_utc DESC
            """,
            (content_hash,),
        )
        return [_row_to_document(row) for row in rows]

    def get_documents_by_path(self, path: Path) -> List[Document]:
        rows = self._fetchall(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE file_path = ?", (str(path),)
        )
        return [_row_to_document(row) for row in rows]

    def update_content_hash(self, document_id: str, content_hash: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE documents SET content_hash = ? WHERE id = ?", (content_hash, document_id)
            )

    # Chunks

    def upsert_chunks(self, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            return
        with self.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO chunks(id, document_id, index_in_document, text, page_start, page_end)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    document_id = excluded.document_id,
                    index_in_document = excluded.index_in_document,
                    text = excluded.text,
                    page_start = excluded.page_start,
                    page_end = excluded.page_end
                """,
                [
                    (c.id, c.document_id, c.index_in_document, c.text, c.page_start, c.page_end)
                    for c in chunks
                ],
            )

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        row = self._fetchone(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id = ?", (chunk_id,)
        )
        return _row_to_chunk(row) if row else None

    def get_chunks_by_document(self, document_id: str) -> List[Chunk]:
        rows = self._fetchall(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks
            WHERE document_id = ?
            ORDER BY index_in_document ASC
            """,
            (document_id,),
        )
        return [_row_to_chunk(row) for row in rows]

    def remove_chunks_by_document(self, document_id: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))

    # Embeddings

    def upsert_embeddings(self, items: Sequence[tuple[str, np.ndarray]]) -> None:
        if not items:
            return
        with self.transaction() as conn:
            conn.executemany(
                "UPDATE chunks SET embedding = ?, embedding_dim = ? WHERE id = ?",
                [
                    (sqlite3.Binary(encode_embedding(vector)), int(np.asarray(vector).size), chunk_id)
                    for chunk_id, vector in items
                ],
            )

    def iter_embeddings(self, dimension: int | None = None) -> Iterator[tuple[str, np.ndarray]]:
        if dimension is None:
            rows = self._fetchall(
                "SELECT id, embedding FROM chunks WHERE embedding IS NOT NULL ORDER BY id ASC"
            )
        else:
            rows = self._fetchall(
                """
                SELECT id, embedding FROM chunks
                WHERE embedding IS NOT NULL AND embedding_dim = ?
                ORDER BY id ASC
                """,
                (dimension,),
            )
        for row in rows:
            yield row["id"], decode_embedding(row["embedding"])

    def count_embeddings(self, dimension: int | None = None) -> int:
        if dimension is None:
            row = self._fetchone(
                "SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL"
            )
        else:
            row = self._fetchone(
                "SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL AND embedding_dim = ?",
                (dimension,),
            )
        return int(row[0])

    def get_stats(self) -> dict[str, int]:
        row = self._fetchone(
            """
            SELECT
                (SELECT COUNT(*) FROM documents) AS document_count,
                (SELECT COUNT(*) FROM chunks) AS chunk_count,
                (SELECT COUNT(*) FROM chunks WHERE embedding IS NOT NULL) AS embedding_count,
                (SELECT COALESCE(SUM(file_size_bytes), 0) FROM documents) AS total_size_bytes
            """
        )
        return {key: int(row[key]) for key in row.keys()}
