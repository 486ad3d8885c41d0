"""Tests for the local stores."""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pytest

from litfinder.exceptions import StoreUnavailable
from litfinder.index.memory_store import InMemoryLocalStore
from litfinder.index.storage import (
    SQLiteLocalStore,
    decode_embedding,
    encode_embedding,
)
from litfinder.models import Chunk, Document


def _document(doc_id: str, path: str = "/docs/a.pdf", content_hash=None, days: int = 0) -> Document:
    return Document(
        id=doc_id,
        file_path=Path(path),
        title=Path(path).stem,
        last_modified_utc=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(days=days),
        file_size_bytes=100,
        content_hash=content_hash,
    )


def _chunks(doc_id: str, count: int) -> list[Chunk]:
    return [
        Chunk(
            id=f"{doc_id}::chunk::{i}",
            document_id=doc_id,
            index_in_document=i,
            text=f"chunk {i} of {doc_id}",
        )
        for i in range(count)
    ]


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    store = SQLiteLocalStore(tmp_path / "test.db")
    yield store
    store.close()


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    """Every LocalStore implementation must pass the same behaviour tests."""
    if request.param == "memory":
        yield InMemoryLocalStore()
        return
    sqlite_store = SQLiteLocalStore(tmp_path / "contract.db")
    yield sqlite_store
    sqlite_store.close()


class TestEmbeddingBlob:
    """Test the float32 blob encoding."""

    def test_round_trip(self):
        vector = np.array([0.5, -1.25, 3.0], dtype="float32")
        blob = encode_embedding(vector)
        assert len(blob) == 12
        np.testing.assert_array_equal(decode_embedding(blob), vector)

    def test_little_endian_layout(self):
        assert encode_embedding(np.array([1.0], dtype="float32")) == b"\x00\x00\x80\x3f"

    def test_invalid_length(self):
        with pytest.raises(ValueError, match="Invalid embedding blob length"):
            decode_embedding(b"\x00\x00\x80")


class TestSQLiteLocalStore:
    """Test SQLiteLocalStore initialization and schema."""

    def test_init_creates_database(self, tmp_path):
        db_path = tmp_path / "new.db"
        assert not db_path.exists()

        store = SQLiteLocalStore(db_path)

        assert db_path.exists()
        assert store.db_path == db_path
        store.close()

    def test_schema_creation(self, temp_db):
        conn = temp_db.connection
        tables = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        indexes = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")
        }
        assert {"documents", "chunks"} <= tables
        assert {
            "idx_documents_file_name",
            "idx_documents_content_hash",
            "idx_chunks_document_id",
            "idx_chunks_has_embedding",
        } <= indexes

    def test_pragma_settings(self, temp_db):
        conn = temp_db.connection
        assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"
        assert conn.execute("PRAGMA synchronous").fetchone()[0] == 1
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_reopen_keeps_data(self, tmp_path):
        db_path = tmp_path / "persist.db"
        with SQLiteLocalStore(db_path) as store:
            store.upsert_document(_document("d1"))
        with SQLiteLocalStore(db_path) as store:
            assert store.get_document("d1") is not None

    def test_file_name_column_is_written(self, temp_db):
        temp_db.upsert_document(_document("d1", "/docs/paper.pdf"))
        row = temp_db.connection.execute("SELECT file_name FROM documents").fetchone()
        assert row[0] == "paper.pdf"

    def test_embedding_dim_column(self, temp_db):
        temp_db.upsert_document(_document("d1"))
        temp_db.upsert_chunks(_chunks("d1", 1))
        temp_db.upsert_embeddings([("d1::chunk::0", np.ones(6, dtype="float32"))])
        row = temp_db.connection.execute("SELECT embedding_dim FROM chunks").fetchone()
        assert row[0] == 6

    def test_transaction_rolls_back(self, temp_db):
        temp_db.upsert_document(_document("d1"))
        with pytest.raises(RuntimeError):
            with temp_db.transaction() as conn:
                conn.execute(
                    "INSERT INTO chunks(id, document_id, index_in_document, text) VALUES (?, ?, ?, ?)",
                    ("x", "d1", 0, "text"),
                )
                raise RuntimeError("boom")
        assert temp_db.get_chunks_by_document("d1") == []

    def test_chunk_batch_is_atomic(self, temp_db):
        temp_db.upsert_document(_document("d1"))
        bad_batch = _chunks("d1", 2) + [
            Chunk(id="orphan", document_id="missing-doc", index_in_document=0, text="x")
        ]
        with pytest.raises(sqlite3.IntegrityError):
            temp_db.upsert_chunks(bad_batch)
        assert temp_db.get_chunks_by_document("d1") == []

    def test_unopenable_path(self, tmp_path):
        with pytest.raises(StoreUnavailable):
            SQLiteLocalStore(tmp_path / "missing" / "dir" / "db.sqlite")

    def test_reads_on_dropped_tables_raise_store_unavailable(self, temp_db):
        temp_db.upsert_document(_document("d1"))
        conn = sqlite3.connect(temp_db.db_path)
        conn.executescript("DROP TABLE chunks; DROP TABLE documents;")
        conn.close()

        with pytest.raises(StoreUnavailable):
            temp_db.get_document("d1")
        with pytest.raises(StoreUnavailable):
            temp_db.list_documents()
        with pytest.raises(StoreUnavailable):
            list(temp_db.iter_embeddings(3))
        with pytest.raises(StoreUnavailable):
            temp_db.get_stats()

    def test_stats(self, temp_db):
        temp_db.upsert_document(_document("d1"))
        temp_db.upsert_chunks(_chunks("d1", 2))
        temp_db.upsert_embeddings([("d1::chunk::0", np.ones(3, dtype="float32"))])
        assert temp_db.get_stats() == {
            "document_count": 1,
            "chunk_count": 2,
            "embedding_count": 1,
            "total_size_bytes": 100,
        }


class TestLocalStoreContract:
    """Behaviour shared by every LocalStore."""

    def test_document_round_trip(self, store):
        doc = _document("d1", content_hash="abc")
        store.upsert_document(doc)
        loaded = store.get_document("d1")
        assert loaded.id == "d1"
        assert loaded.file_path == Path("/docs/a.pdf")
        assert loaded.last_modified_utc == doc.last_modified_utc
        assert loaded.content_hash == "abc"
        assert store.get_document("nope") is None

    def test_upsert_without_hash_keeps_existing_hash(self, store):
        store.upsert_document(_document("d1", content_hash="abc"))
        store.upsert_document(_document("d1"))
        assert store.get_document("d1").content_hash == "abc"

    def test_list_documents_newest_first(self, store):
        store.upsert_document(_document("old", "/a.pdf", days=0))
        store.upsert_document(_document("new", "/b.pdf", days=5))
        assert [doc.id for doc in store.list_documents()] == ["new", "old"]

    def test_content_hash_lookup(self, store):
        store.upsert_document(_document("d1", "/a.pdf", content_hash="same"))
        store.upsert_document(_document("d2", "/b.pdf", content_hash="same"))
        store.upsert_document(_document("d3", "/c.pdf", content_hash="other"))
        store.update_content_hash("d3", "same")
        assert {doc.id for doc in store.get_documents_by_content_hash("same")} == {"d1", "d2", "d3"}

    def test_documents_by_path(self, store):
        store.upsert_document(_document("v1", "/a.pdf"))
        store.upsert_document(_document("v2", "/a.pdf", days=1))
        store.upsert_document(_document("other", "/b.pdf"))
        assert {doc.id for doc in store.get_documents_by_path(Path("/a.pdf"))} == {"v1", "v2"}

    def test_chunks_ordered_by_index(self, store):
        store.upsert_document(_document("d1"))
        store.upsert_chunks(list(reversed(_chunks("d1", 3))))
        assert [c.index_in_document for c in store.get_chunks_by_document("d1")] == [0, 1, 2]
        assert store.get_chunk("d1::chunk::1").text == "chunk 1 of d1"
        assert store.get_chunk("missing") is None

    def test_remove_chunks_by_document(self, store):
        store.upsert_document(_document("d1"))
        store.upsert_chunks(_chunks("d1", 2))
        store.upsert_embeddings([("d1::chunk::0", np.ones(3, dtype="float32"))])
        store.remove_chunks_by_document("d1")
        assert store.get_chunks_by_document("d1") == []
        assert store.count_embeddings() == 0

    def test_remove_document_cascades(self, store):
        store.upsert_document(_document("d1"))
        store.upsert_chunks(_chunks("d1", 2))
        store.upsert_embeddings([("d1::chunk::0", np.ones(3, dtype="float32"))])

        assert store.remove_document("d1") is True
        assert store.remove_document("d1") is False
        assert store.get_chunk("d1::chunk::0") is None
        assert list(store.iter_embeddings()) == []

    def test_embeddings_round_trip(self, store):
        store.upsert_document(_document("d1"))
        store.upsert_chunks(_chunks("d1", 2))
        vectors = {
            "d1::chunk::0": np.array([0.1, 0.2, 0.3], dtype="float32"),
            "d1::chunk::1": np.array([1.0, 0.0, -1.0], dtype="float32"),
        }
        store.upsert_embeddings(list(vectors.items()))

        loaded = dict(store.iter_embeddings())
        assert set(loaded) == set(vectors)
        for chunk_id, vector in vectors.items():
            np.testing.assert_array_equal(loaded[chunk_id], vector)
            assert loaded[chunk_id].dtype == np.float32

    def test_embeddings_filtered_by_dimension(self, store):
        store.upsert_document(_document("d1"))
        store.upsert_chunks(_chunks("d1", 2))
        store.upsert_embeddings(
            [
                ("d1::chunk::0", np.ones(3, dtype="float32")),
                ("d1::chunk::1", np.ones(4, dtype="float32")),
            ]
        )
        assert store.count_embeddings() == 2
        assert store.count_embeddings(3) == 1
        assert [chunk_id for chunk_id, _ in store.iter_embeddings(4)] == ["d1::chunk::1"]

    def test_embedding_for_unknown_chunk_is_ignored(self, store):
        store.upsert_embeddings([("ghost::chunk::0", np.ones(3, dtype="float32"))])
        assert store.count_embeddings() == 0

    def test_find_missing_documents(self, store, tmp_path):
        present = tmp_path / "present.txt"
        present.write_text("x")
        store.upsert_document(_document("here", str(present)))
        store.upsert_document(_document("gone", str(tmp_path / "gone.txt")))
        assert [doc.id for doc in store.find_missing_documents()] == ["gone"]

    def test_stats_on_empty_store(self, store):
        assert store.get_stats() == {
            "document_count": 0,
            "chunk_count": 0,
            "embedding_count": 0,
            "total_size_bytes": 0,
        }
