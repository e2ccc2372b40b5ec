"""Text exports: keyword CSV and the Markdown download of a saved document."""

from __future__ import annotations

import csv
import io
import re
from typing import Iterable, Sequence

from ..pipeline.schema import Document, Keyword

__all__ = [
    "KEYWORD_CSV_HEADER",
    "keyword_row",
    "keywords_to_csv",
    "document_filename",
    "document_to_markdown",
]

KEYWORD_CSV_HEADER: tuple[str, ...] = ("Term", "LSI Keywords", "Intent", "Search Volume", "KEI", "KGR")

_FILENAME_UNSAFE = re.compile(r"[ /]")


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def keyword_row(keyword: Keyword) -> list[str]:
    return [
        keyword.term,
        ", ".join(keyword.lsi_keywords),
        keyword.intent,
        str(keyword.search_volume),
        _number(keyword.kei),
        _number(keyword.kgr),
    ]


def keywords_to_csv(keywords: Iterable[Keyword], *, header: Sequence[str] = KEYWORD_CSV_HEADER) -> str:
    """Render keywords as CSV; fields with commas, quotes or newlines are quoted."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(header)
    for keyword in keywords:
        writer.writerow(keyword_row(keyword))
    return buffer.getvalue()


def document_filename(title: str) -> str:
    return f"{_FILENAME_UNSAFE.sub('_', title.strip()) or 'article'}.md"


def document_to_markdown(document: Document) -> str:
    """The Markdown download is the merged body as-is, image tags included."""

    return document.body
