"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from litfinder.embedding.encoder import DEFAULT_MODEL
from litfinder.embedding.stub import DEFAULT_DIMENSION


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "LitFinder" / "litfinder.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/litfinder.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    embedder: str = "sentence-transformers"
    hash_dimension: int = DEFAULT_DIMENSION
    chunk_sentences: int = 8
    sentence_overlap: int = 2
    min_chunk_chars: int = 40
    top_k: int = 10

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    @property
    def chunk_stride(self) -> int:
        return self.chunk_sentences - self.sentence_overlap

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
