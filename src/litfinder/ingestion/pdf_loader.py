"""Text extraction for indexed files.

Uses PyMuPDF (fitz) for fast PDF text extraction.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterator

import fitz  # PyMuPDF

from litfinder.base import TextExtractor
from litfinder.exceptions import ExtractionFailed, IndexingCancelled

LOGGER = logging.getLogger(__name__)


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise IndexingCancelled()


def iter_page_texts(path: Path, cancel_event: threading.Event | None = None) -> Iterator[str]:
    """Yield the text of each PDF page, checking for cancellation per page."""
    doc = fitz.open(path)
    try:
        for index in range(len(doc)):
            _check_cancelled(cancel_event)
            text = doc[index].get_text() or ""
            if text.strip():
                yield text.strip()
    finally:
        doc.close()


class PdfTextExtractor(TextExtractor):
    """Concatenates page texts, one page per line block."""

    def extract(self, path: Path, cancel_event: threading.Event | None = None) -> str:
        path = Path(path)
        if not path.is_file():
            raise ExtractionFailed(path.name, FileNotFoundError(str(path)))
        try:
            return "\n".join(iter_page_texts(path, cancel_event))
        except IndexingCancelled:
            raise
        except Exception as exc:
            LOGGER.error("Failed to read PDF %s: %s", path, exc)
            raise ExtractionFailed(path.name, exc) from exc


class PlainTextExtractor(TextExtractor):
    def extract(self, path: Path, cancel_event: threading.Event | None = None) -> str:
        path = Path(path)
        _check_cancelled(cancel_event)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ExtractionFailed(path.name, exc) from exc


class DocumentTextExtractor(TextExtractor):
    """Dispatches to a format-specific extractor by file suffix."""

    def __init__(self, extractors: Dict[str, TextExtractor] | None = None) -> None:
        self.extractors = extractors or {
            ".pdf": PdfTextExtractor(),
            ".txt": PlainTextExtractor(),
        }

    def extract(self, path: Path, cancel_event: threading.Event | None = None) -> str:
        path = Path(path)
        extractor = self.extractors.get(path.suffix.lower())
        if extractor is None:
            raise ExtractionFailed(path.name, ValueError(f"Unsupported file type: {path.suffix}"))
        return extractor.extract(path, cancel_event)
