"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

SUPPORTED_SUFFIXES = frozenset({".pdf", ".txt"})


def iter_document_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield supported document paths, descending into directories.

    Each file is yielded once even when reachable through several inputs.
    """
    seen: set[Path] = set()
    for path in _walk(inputs):
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        yield resolved


def _walk(inputs: Iterable[Path]) -> Iterator[Path]:
    for item in inputs:
        item = Path(item)
        if item.is_dir():
            yield from _walk(
                sorted(
                    child
                    for child in item.rglob("*")
                    if child.is_file() and child.suffix.lower() in SUPPORTED_SUFFIXES
                )
            )
        elif item.is_file() and item.suffix.lower() in SUPPORTED_SUFFIXES:
            yield item


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def stable_document_id(path: Path) -> str:
    """Identifier derived from absolute path, modification time and size."""
    absolute = Path(path).resolve()
    stat = absolute.stat()
    key = f"{absolute}:{stat.st_mtime_ns}:{stat.st_size}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def modified_utc(path: Path) -> datetime:
    return datetime.fromtimestamp(Path(path).stat().st_mtime, tz=timezone.utc)
