"""Exception hierarchy shared by the seoflow pipeline and content layers."""

from __future__ import annotations

from typing import Sequence

__all__ = [
    "SeoflowError",
    "PipelineGraphError",
    "UnknownStageError",
    "ImmutableArtifactError",
    "MissingSelectionError",
    "AssemblyPreconditionError",
    "IncompleteDocumentError",
    "GenerationInProgressError",
    "StateFileError",
]


class SeoflowError(RuntimeError):
    """Base error for every failure raised by seoflow itself."""


class PipelineGraphError(SeoflowError):
    """Raised when the stage table cannot form a valid forward-only graph."""


class UnknownStageError(SeoflowError):
    """Raised when a stage identifier is not part of the pipeline."""


class ImmutableArtifactError(SeoflowError):
    """Raised on an attempt to edit an artifact outside the article collection."""


class MissingSelectionError(SeoflowError):
    """Raised when a stage is asked to run before its upstream selections exist."""

    def __init__(self, missing: Sequence[str], *, action: str = "continue") -> None:
        self.missing = list(missing)
        super().__init__(f"Cannot {action}; missing: {', '.join(self.missing)}")


class AssemblyPreconditionError(MissingSelectionError):
    """Raised when the document assembler is asked to run without its inputs."""

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__(missing, action="assemble document")


class IncompleteDocumentError(SeoflowError):
    """Raised when merging before all three article parts have been generated."""


class GenerationInProgressError(SeoflowError):
    """Raised when a second generation request targets a stage that is still busy."""


class StateFileError(SeoflowError):
    """Raised when the persisted workspace state cannot be written."""
