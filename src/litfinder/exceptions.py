"""Exceptions raised by the indexing and search pipeline."""

from __future__ import annotations


class LitFinderError(Exception):
    """Base class for all LitFinder errors."""


class ExtractionFailed(LitFinderError):
    """Text could not be extracted from a source file."""

    def __init__(self, file_name: str, cause: BaseException | None = None) -> None:
        self.file_name = file_name
        self.cause = cause
        message = f"Failed to extract text from {file_name}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DimensionMismatch(LitFinderError, ValueError):
    """Vector length disagrees with the index or store dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension {actual} != expected {expected}")


class StoreUnavailable(LitFinderError):
    """The durable store could not be opened or reached."""


class IndexingCancelled(LitFinderError):
    """Cooperative cancellation was observed."""
