"""Word count and reading-time estimates for assembled documents."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

__all__ = [
    "DEFAULT_WORDS_PER_MINUTE",
    "DocumentStats",
    "strip_markup",
    "word_count",
    "reading_time",
]

DEFAULT_WORDS_PER_MINUTE = 225

_PLACEHOLDER_RE = re.compile(r"\[IMAGE_\d+\]", re.IGNORECASE)
_HTML_IMAGE_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_MARKDOWN_IMAGE_RE = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_RE = re.compile(r"\[(.*?)\]\(.*?\)")
_HEADING_RE = re.compile(r"#{1,6}\s")
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_|~~|`{1,3})")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"\b\w+\b")


def strip_markup(text: str) -> str:
    """Remove image embeds and inline markup, keeping link text and plain words.

    Passes repeat until nothing changes, so stripping an already stripped
    text is a no-op.
    """

    if not text:
        return ""
    current = text
    while True:
        stripped = _strip_once(current)
        if stripped == current:
            return stripped
        current = stripped


def _strip_once(text: str) -> str:
    stripped = _PLACEHOLDER_RE.sub("", text)
    stripped = _HTML_IMAGE_RE.sub("", stripped)
    stripped = _MARKDOWN_IMAGE_RE.sub("", stripped)
    stripped = _LINK_RE.sub(r"\1", stripped)
    stripped = _HEADING_RE.sub("", stripped)
    stripped = _EMPHASIS_RE.sub("", stripped)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def word_count(text: str) -> int:
    return len(_WORD_RE.findall(strip_markup(text)))


def reading_time(words: int, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> int:
    """Minutes needed to read ``words`` words, rounded up; zero words take zero minutes."""

    if words <= 0:
        return 0
    if words_per_minute <= 0:
        raise ValueError("words_per_minute must be positive")
    return math.ceil(words / words_per_minute)


@dataclass(frozen=True, slots=True)
class DocumentStats:
    """Publish summary figures for a document body."""

    word_count: int
    reading_time_minutes: int
    image_count: int

    @classmethod
    def for_body(
        cls,
        body: str,
        *,
        image_count: int = 0,
        words_per_minute: int = DEFAULT_WORDS_PER_MINUTE,
    ) -> "DocumentStats":
        words = word_count(body)
        return cls(
            word_count=words,
            reading_time_minutes=reading_time(words, words_per_minute),
            image_count=image_count,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "word_count": self.word_count,
            "reading_time_minutes": self.reading_time_minutes,
            "image_count": self.image_count,
        }
