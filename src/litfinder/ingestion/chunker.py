"""Sentence-aware chunking with overlapping windows."""

from __future__ import annotations

import re
from typing import List

from litfinder.models import Chunk, make_chunk_id

DEFAULT_WINDOW = 8
DEFAULT_STRIDE = 6
DEFAULT_MIN_CHARS = 40

DOT_PLACEHOLDER = "∯"

ABBREVIATIONS = (
    # Latin / academic
    "e.g.", "i.e.", "et al.", "etc.", "cf.", "approx.", "ca.", "al.",
    # People / titles
    "Dr.", "Prof.", "Mr.", "Ms.", "Mrs.", "Sr.", "Jr.",
    # Figures / tables / equations
    "Fig.", "Figs.", "Tab.", "Tabs.", "Table.", "Tables.",
    "Eq.", "Eqs.", "Eqn.", "Eqns.",
    # Sections / references
    "Sec.", "Secs.", "Ch.", "Chap.", "Vol.", "No.", "Nos.", "Ref.", "Refs.",
    # Publishing
    "ed.", "eds.", "rev.", "repr.",
    # Time / measurement
    "yr.", "yrs.", "wk.", "wks.", "mo.", "mos.",
    # Scientific
    "vs.", "min.", "max.", "avg.", "std.",
    # Geography / institutions
    "U.S.", "U.K.", "E.U.", "U.N.",
    # Degrees
    "Ph.D.", "M.Sc.", "B.Sc.", "M.D.", "D.Phil.",
)

_ABBREVIATION_RES = [
    (re.compile(r"(?<!\w)" + re.escape(abbr)), abbr.replace(".", DOT_PLACEHOLDER))
    for abbr in ABBREVIATIONS
]
_ACRONYM_RE = re.compile(r"\b(?:[A-Za-z]\.){2,}")
_DECIMAL_RE = re.compile(r"(?<=\d)\.(?=\d)")
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")


def protect_abbreviations(text: str) -> str:
    """Hide periods that do not end a sentence behind a placeholder."""
    for pattern, safe in _ABBREVIATION_RES:
        text = pattern.sub(safe, text)
    text = _ACRONYM_RE.sub(lambda match: match.group(0).replace(".", DOT_PLACEHOLDER), text)
    return _DECIMAL_RE.sub(DOT_PLACEHOLDER, text)


def split_sentences(text: str) -> List[str]:
    sentences = []
    for part in _SENTENCE_BOUNDARY_RE.split(protect_abbreviations(text)):
        restored = part.replace(DOT_PLACEHOLDER, ".").strip()
        if restored:
            sentences.append(restored)
    return sentences


class SentenceChunker:
    """Groups sentences into overlapping windows.

    With the defaults each chunk holds up to 8 sentences and consecutive chunks
    share 2 of them. A window starts at every stride position before the last
    sentence, so the final windows may be shorter. Windows whose text is
    shorter than ``min_chars`` are dropped without consuming a chunk index.
    """

    def __init__(
        self,
        *,
        window: int = DEFAULT_WINDOW,
        stride: int = DEFAULT_STRIDE,
        min_chars: int = DEFAULT_MIN_CHARS,
    ) -> None:
        if window <= 0:
            raise ValueError("window must be positive")
        if not 0 < stride <= window:
            raise ValueError("stride must be between 1 and window")
        if min_chars < 0:
            raise ValueError("min_chars must be non-negative")
        self.window = window
        self.stride = stride
        self.min_chars = min_chars

    def chunk(self, document_id: str, text: str) -> List[Chunk]:
        if not text or not text.strip():
            return []

        sentences = split_sentences(text)
        chunks: List[Chunk] = []
        for start in range(0, len(sentences), self.stride):
            chunk_text = " ".join(sentences[start : start + self.window]).strip()
            if len(chunk_text) >= self.min_chars:
                index = len(chunks)
                chunks.append(
                    Chunk(
                        id=make_chunk_id(document_id, index),
                        document_id=document_id,
                        index_in_document=index,
                        text=chunk_text,
                    )
                )
        return chunks
