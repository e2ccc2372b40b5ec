"""Article assembly, text metrics, exports and LLM generation."""

from .assembler import (
    PARTS,
    AssemblyContext,
    DocumentAssembler,
    PartPlan,
    distribute_ctas,
    distribute_images,
    inject_images,
    merge_document,
    split_outline,
)
from .exporters import document_filename, document_to_markdown, keywords_to_csv
from .generator import ContentGenerator, ContentPromptBuilder, LangChainContentGenerator, image_prompts_for
from .metrics import DEFAULT_WORDS_PER_MINUTE, DocumentStats, reading_time, strip_markup, word_count

__all__ = [
    "PARTS",
    "AssemblyContext",
    "DocumentAssembler",
    "PartPlan",
    "distribute_ctas",
    "distribute_images",
    "inject_images",
    "merge_document",
    "split_outline",
    "document_filename",
    "document_to_markdown",
    "keywords_to_csv",
    "ContentGenerator",
    "ContentPromptBuilder",
    "LangChainContentGenerator",
    "image_prompts_for",
    "DEFAULT_WORDS_PER_MINUTE",
    "DocumentStats",
    "reading_time",
    "strip_markup",
    "word_count",
]
