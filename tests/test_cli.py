"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from litfinder.cli import _ask_duplicate, _ensure_db_parent, _setup_logging, app
from litfinder.index.indexer import DuplicateDecision

runner = CliRunner()


def _write_paper(path: Path, topic: str = "graph") -> Path:
    path.write_text(
        " ".join(f"The {topic} study reports finding number {i} in detail." for i in range(10))
    )
    return path


def _index(paths: list[Path], db_path: Path, *extra: str):
    return runner.invoke(
        app,
        ["index", *[str(p) for p in paths], "--db", str(db_path), "--embedder", "hash", *extra],
    )


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("litfinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("litfinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestEnsureDbParent:
    def test_creates_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "subdir" / "test.db"
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()


class TestAskDuplicate:
    """Tests for the interactive duplicate prompt."""

    def test_valid_answer(self) -> None:
        with patch("litfinder.cli.typer.prompt", return_value="Replace "):
            assert _ask_duplicate(Path("b.txt"), []) is DuplicateDecision.REPLACE_EXISTING

    def test_unknown_answer_skips(self) -> None:
        with patch("litfinder.cli.typer.prompt", return_value="maybe"):
            assert _ask_duplicate(Path("b.txt"), []) is DuplicateDecision.SKIP


class TestIndexCommand:
    """Tests for the index command."""

    def test_index_no_documents_found(self, tmp_path: Path) -> None:
        empty_dir = tmp_path / "empty"
        empty_dir.mkdir()
        result = _index([empty_dir], tmp_path / "test.db")
        assert result.exit_code == 0
        assert "No documents found" in result.stdout

    def test_index_inserts(self, tmp_path: Path) -> None:
        docs = tmp_path / "docs"
        docs.mkdir()
        _write_paper(docs / "a.txt")
        db_path = tmp_path / "nested" / "test.db"

        result = _index([docs], db_path)

        assert result.exit_code == 0
        assert "[1/1] Inserted a.txt" in result.stdout
        assert "Inserted: 1, updated: 0, skipped: 0, failed: 0" in result.stdout
        assert db_path.exists()

    def test_index_twice_updates(self, tmp_path: Path) -> None:
        paper = _write_paper(tmp_path / "a.txt")
        db_path = tmp_path / "test.db"
        _index([paper], db_path)

        result = _index([paper], db_path, "-v")

        assert result.exit_code == 0
        assert "Inserted: 0, updated: 1" in result.stdout

    def test_duplicates_skipped(self, tmp_path: Path) -> None:
        first = _write_paper(tmp_path / "a.txt")
        second = tmp_path / "b.txt"
        second.write_bytes(first.read_bytes())

        result = _index([first, second], tmp_path / "test.db", "--on-duplicate", "skip")

        assert result.exit_code == 0
        assert "Inserted: 1, updated: 0, skipped: 1" in result.stdout

    def test_duplicates_indexed_anyway(self, tmp_path: Path) -> None:
        first = _write_paper(tmp_path / "a.txt")
        second = tmp_path / "b.txt"
        second.write_bytes(first.read_bytes())

        result = _index([first, second], tmp_path / "test.db", "--on-duplicate", "index")

        assert "Inserted: 2" in result.stdout

    @patch("litfinder.cli.Indexer")
    @patch("litfinder.cli.SQLiteLocalStore")
    def test_cancelled_batch_is_reported(
        self, mock_store_class: MagicMock, mock_indexer_class: MagicMock, tmp_path: Path
    ) -> None:
        summary = MagicMock(inserted=0, updated=0, skipped=0, failed=0, cancelled=True)
        mock_indexer_class.return_value.index.return_value = summary

        result = _index([_write_paper(tmp_path / "a.txt")], tmp_path / "test.db")

        assert result.exit_code == 0
        assert "Indexing cancelled" in result.stdout
        mock_store_class.return_value.close.assert_called_once()


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_database_not_found(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["search", "test query", "--db", str(tmp_path / "nonexistent.db")]
        )
        assert result.exit_code != 0

    def test_search_with_results(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        _index([_write_paper(tmp_path / "a.txt")], db_path)

        result = runner.invoke(
            app, ["search", "graph study", "--db", str(db_path), "--embedder", "hash"]
        )

        assert result.exit_code == 0
        assert "Score" in result.stdout
        assert "No matches found" not in result.stdout

    def test_search_empty_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        _index([_write_paper(tmp_path / "a.txt")], db_path)
        (tmp_path / "a.txt").unlink()
        runner.invoke(app, ["prune", "--db", str(db_path), "--yes"])

        result = runner.invoke(
            app, ["search", "anything", "--db", str(db_path), "--embedder", "hash"]
        )

        assert result.exit_code == 0
        assert "No matches found" in result.stdout


class TestPruneCommand:
    """Tests for the prune command."""

    def test_prune_missing_database(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["prune", "--db", str(tmp_path / "none.db")])
        assert result.exit_code == 0
        assert "nothing to prune" in result.stdout

    def test_prune_with_confirmation(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        paper = _write_paper(tmp_path / "a.txt")
        _index([paper], db_path)
        paper.unlink()

        declined = runner.invoke(app, ["prune", "--db", str(db_path)], input="n\n")
        accepted = runner.invoke(app, ["prune", "--db", str(db_path)], input="y\n")

        assert "Removed 0 orphaned documents." in declined.stdout
        assert "Removed 1 orphaned documents." in accepted.stdout


class TestStatsCommand:
    def test_stats(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        _index([_write_paper(tmp_path / "a.txt")], db_path)

        result = runner.invoke(app, ["stats", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Document count" in result.stdout
        assert "Embedding count" in result.stdout

    def test_stats_missing_database(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["stats", "--db", str(tmp_path / "none.db")])
        assert result.exit_code != 0


class TestWebCommand:
    @patch("uvicorn.run")
    def test_web_starts_server(self, mock_run: MagicMock, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["web", "--db", str(tmp_path / "test.db"), "--port", "9000"]
        )
        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["port"] == 9000
