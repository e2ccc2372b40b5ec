"""Stage graph, artifact store and selection engine."""

from .schema import (
    Artifact,
    ArtifactSet,
    ArticleOptions,
    Document,
    Keyword,
    Outline,
    Persona,
    ProductInfo,
    parse_payload,
)
from .selection import SelectionEngine, SelectionValue
from .stages import (
    DEFAULT_GRAPH,
    STAGE_TABLE,
    Collection,
    DefaultPolicy,
    PipelineGraph,
    Reference,
    SelectionKind,
    Stage,
    StageDescriptor,
    coerce_stage,
    describe,
)
from .state import DEFAULT_STORAGE_KEY, Preferences, StateFile, WorkspaceSnapshot
from .store import ArtifactStore

__all__ = [
    "Artifact",
    "ArtifactSet",
    "ArticleOptions",
    "Document",
    "Keyword",
    "Outline",
    "Persona",
    "ProductInfo",
    "parse_payload",
    "SelectionEngine",
    "SelectionValue",
    "DEFAULT_GRAPH",
    "STAGE_TABLE",
    "Collection",
    "DefaultPolicy",
    "PipelineGraph",
    "Reference",
    "SelectionKind",
    "Stage",
    "StageDescriptor",
    "coerce_stage",
    "describe",
    "DEFAULT_STORAGE_KEY",
    "Preferences",
    "StateFile",
    "WorkspaceSnapshot",
    "ArtifactStore",
]
