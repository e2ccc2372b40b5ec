"""seoflow: staged SEO article pipeline with cascading selections."""

from .errors import (
    AssemblyPreconditionError,
    GenerationInProgressError,
    IncompleteDocumentError,
    MissingSelectionError,
    SeoflowError,
)
from .pipeline import ArtifactStore, PipelineGraph, SelectionEngine, Stage
from .pipeline.workspace import Workspace
from .content import DocumentAssembler, LangChainContentGenerator
from .content.orchestrator import StageOrchestrator
from .config import BudgetConfig, ImageConfig, LLMConfig, SeoflowConfig, WritingConfig
from .io import LoadedDocument, export_document, export_keywords, load_input_resource

__all__ = [
    "SeoflowError",
    "MissingSelectionError",
    "AssemblyPreconditionError",
    "IncompleteDocumentError",
    "GenerationInProgressError",
    "ArtifactStore",
    "PipelineGraph",
    "SelectionEngine",
    "Stage",
    "Workspace",
    "DocumentAssembler",
    "LangChainContentGenerator",
    "StageOrchestrator",
    "BudgetConfig",
    "ImageConfig",
    "LLMConfig",
    "SeoflowConfig",
    "WritingConfig",
    "LoadedDocument",
    "export_document",
    "export_keywords",
    "load_input_resource",
]
