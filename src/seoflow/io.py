"""File input and output for the CLI: source content in, exports out."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .content.exporters import document_filename, document_to_markdown, keywords_to_csv
from .pipeline.schema import Document, Keyword

__all__ = [
    "LoadedDocument",
    "load_input_resource",
    "load_json_resource",
    "write_text_export",
    "export_document",
    "export_keywords",
]

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".md", ".markdown", ".txt", ".html", ".htm"}


@dataclass(slots=True)
class LoadedDocument:
    """Container for source content and its metadata."""

    content: str
    source: Path
    metadata: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "source": str(self.source),
            "metadata": self.metadata,
        }


def _existing(source: Path | str) -> Path:
    source_path = Path(source).expanduser()
    if not source_path.exists():
        raise FileNotFoundError(f"Resource not found: {source_path}")
    return source_path


def load_input_resource(source: Path | str, *, encoding: str = "utf-8") -> LoadedDocument:
    """Load Markdown, HTML or plain-text content used as analysis input."""

    source_path = _existing(source)
    suffix = source_path.suffix.lower()
    if suffix not in TEXT_SUFFIXES:
        raise ValueError(f"Unsupported input format for {source_path}")
    text = source_path.read_text(encoding=encoding)
    metadata = {
        "kind": "markdown" if suffix in {".md", ".markdown"} else suffix.lstrip("."),
        "length": len(text),
        "path": str(source_path),
    }
    return LoadedDocument(content=text, source=source_path, metadata=metadata)


def load_json_resource(source: Path | str, *, encoding: str = "utf-8") -> Any:
    source_path = _existing(source)
    try:
        return json.loads(source_path.read_text(encoding=encoding))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {source_path}: {exc.msg}") from exc


def write_text_export(path: Path | str, text: str, *, encoding: str = "utf-8") -> Path:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding=encoding)
    logger.info("Wrote %s (%d chars)", target, len(text))
    return target


def export_document(document: Document, directory: Path | str) -> Path:
    """Write the Markdown download of ``document`` under its title-derived filename."""

    return write_text_export(Path(directory) / document_filename(document.title), document_to_markdown(document))


def export_keywords(keywords: Iterable[Keyword], path: Path | str) -> Path:
    return write_text_export(path, keywords_to_csv(keywords))
