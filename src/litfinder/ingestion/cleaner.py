"""Boilerplate-aware cleaning of extracted text."""

from __future__ import annotations

import re
from collections import Counter

ABSTRACT_RE = re.compile(r"\babstract\b", re.IGNORECASE)
REFERENCES_RE = re.compile(r"\breferences\b", re.IGNORECASE)

# Header/footer, rights and contact noise
BANNED_SUBSTRINGS = (
    "all rights reserved",
    "journal compilation",
    "copyright",
    "©",
    "doi:",
    "issn",
    "isbn",
    "downloaded",
    "https",
    "email",
    "@",
)

# Page numbers and separators
PUNCT_OR_NUMBER_RE = re.compile(r"^[\s\d\W_]+$")

REPEAT_THRESHOLD = 3
SHORT_NOISE_CHARS = 20
SHOUTY_LINE_CHARS = 60


def extract_main_body(text: str) -> str:
    """Keep the span between the abstract marker and the references marker."""
    abstract = ABSTRACT_RE.search(text)
    start = abstract.start() if abstract else 0
    references = REFERENCES_RE.search(text, abstract.end() if abstract else 0)
    end = references.start() if references else len(text)
    return text[start:end]


def normalize_line(line: str) -> str:
    """Collapse whitespace and drop digits so 'Page 1' and 'Page 12' compare equal."""
    collapsed = re.sub(r"\s+", " ", line.strip())
    return re.sub(r"\d+", "", collapsed).strip().casefold()


def is_mostly_upper(line: str) -> bool:
    letters = [ch for ch in line if ch.isalpha()]
    uppers = sum(1 for ch in letters if ch.isupper())
    return len(letters) >= 8 and uppers >= int(len(letters) * 0.85)


def merge_hard_wraps(text: str) -> str:
    """Join wrapped lines inside each paragraph, de-hyphenating where needed."""
    paragraphs = text.split("\n\n")
    merged = []
    for paragraph in paragraphs:
        lines = [line.strip() for line in paragraph.split("\n") if line.strip()]
        if len(lines) <= 1:
            merged.append(paragraph)
            continue
        joined = lines[0]
        for line in lines[1:]:
            if joined.endswith("-"):
                joined = joined[:-1] + line
            else:
                joined = f"{joined} {line}"
        merged.append(joined)
    return "\n\n".join(merged)


class TextCleaner:
    """Removes running headers, boilerplate and hard line wraps."""

    def __init__(self, *, repeat_threshold: int = REPEAT_THRESHOLD) -> None:
        self.repeat_threshold = repeat_threshold

    def clean(self, raw_text: str) -> str:
        if not raw_text or not raw_text.strip():
            return ""

        text = extract_main_body(raw_text)
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        lines = text.split("\n")

        frequencies = Counter(key for key in (normalize_line(line) for line in lines) if key)
        repeated = {key for key, count in frequencies.items() if count >= self.repeat_threshold}

        kept: list[str] = []
        for line in lines:
            trimmed = line.strip()
            if not trimmed:
                kept.append("")
                continue
            if self._is_noise(trimmed, repeated):
                continue
            kept.append(trimmed)

        cleaned = merge_hard_wraps("\n".join(kept))
        cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
        return cleaned.strip()

    def _is_noise(self, line: str, repeated: set[str]) -> bool:
        if normalize_line(line) in repeated:
            return True
        if len(line) <= SHORT_NOISE_CHARS and PUNCT_OR_NUMBER_RE.match(line):
            return True
        lowered = line.lower()
        if any(marker in lowered for marker in BANNED_SUBSTRINGS):
            return True
        return len(line) <= SHOUTY_LINE_CHARS and is_mostly_upper(line)


_DEFAULT_CLEANER = TextCleaner()


def clean_text(raw_text: str) -> str:
    return _DEFAULT_CLEANER.clean(raw_text)
