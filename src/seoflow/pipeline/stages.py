"""Static stage table for the content pipeline.

The pipeline is declared as data: every stage lists the upstream stages it
reads. :class:`PipelineGraph` inverts that table into an adjacency map and
precomputes, for each stage, the ordered list of stages that must be cleared
when its selection changes. Adding a stage therefore only requires a new row
in :data:`STAGE_TABLE`; the invalidation rule follows from the dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Sequence

from ..errors import PipelineGraphError, UnknownStageError

__all__ = [
    "Stage",
    "Collection",
    "SelectionKind",
    "Reference",
    "DefaultPolicy",
    "StageDescriptor",
    "PipelineGraph",
    "STAGE_TABLE",
    "DEFAULT_GRAPH",
    "coerce_stage",
    "describe",
]


class Stage(str, Enum):
    """Selection keys in pipeline order."""

    PRODUCT = "product"
    PERSONA = "persona"
    KEYWORD_SET = "keyword_set"
    KEYWORDS = "keywords"
    ANALYSIS = "analysis"
    OBJECTIVE_SET = "objective_set"
    OBJECTIVES = "objectives"
    TITLE_SET = "title_set"
    TITLE = "title"
    META_DESCRIPTION_SET = "meta_description_set"
    META_DESCRIPTION = "meta_description"
    SAPO_SET = "sapo_set"
    SAPO = "sapo"
    CTA_SET = "cta_set"
    CTAS = "ctas"
    OUTLINE = "outline"
    IMAGE_SET = "image_set"
    IMAGES = "images"
    FEATURE_IMAGE = "feature_image"
    ARTICLE = "article"


class Collection(str, Enum):
    """Store buckets that selections point into."""

    PRODUCTS = "products"
    PERSONAS = "personas"
    KEYWORD_SETS = "keyword_sets"
    ANALYSES = "analyses"
    OBJECTIVE_SETS = "objective_sets"
    TITLE_SETS = "title_sets"
    META_DESCRIPTION_SETS = "meta_description_sets"
    SAPO_SETS = "sapo_sets"
    CTA_SETS = "cta_sets"
    OUTLINES = "outlines"
    IMAGE_SETS = "image_sets"
    ARTICLES = "articles"


class SelectionKind(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


class Reference(str, Enum):
    """What kind of id a stage's selection holds."""

    # the only option of a single-record set (product, persona, outline, ...)
    RECORD = "record"
    # an artifact-set id
    SET = "set"
    # option ids inside the currently selected set
    OPTION = "option"


class DefaultPolicy(str, Enum):
    """Selection adopted for an option stage when a fresh set is created."""

    NONE = "none"
    FIRST = "first"
    FIRST_THREE = "first_three"
    ALL = "all"

    def pick(self, option_ids: Sequence[str]) -> list[str]:
        if self is DefaultPolicy.FIRST:
            return list(option_ids[:1])
        if self is DefaultPolicy.FIRST_THREE:
            return list(option_ids[:3])
        if self is DefaultPolicy.ALL:
            return list(option_ids)
        return []


@dataclass(frozen=True, slots=True)
class StageDescriptor:
    """One row of the pipeline table."""

    stage: Stage
    collection: Collection
    kind: SelectionKind = SelectionKind.SINGLE
    reference: Reference = Reference.RECORD
    depends_on: tuple[Stage, ...] = ()
    # upstream selections recorded as ``parent_ref`` on generated sets
    parents: tuple[Stage, ...] = ()
    default_policy: DefaultPolicy = DefaultPolicy.NONE

    @property
    def is_multi(self) -> bool:
        return self.kind is SelectionKind.MULTI

    def empty_value(self) -> str | list[str] | None:
        return [] if self.is_multi else None


STAGE_TABLE: tuple[StageDescriptor, ...] = (
    StageDescriptor(Stage.PRODUCT, Collection.PRODUCTS),
    StageDescriptor(
        Stage.PERSONA,
        Collection.PERSONAS,
        depends_on=(Stage.PRODUCT,),
        parents=(Stage.PRODUCT,),
    ),
    StageDescriptor(
        Stage.KEYWORD_SET,
        Collection.KEYWORD_SETS,
        reference=Reference.SET,
        depends_on=(Stage.PERSONA,),
        parents=(Stage.PERSONA,),
    ),
    StageDescriptor(
        Stage.KEYWORDS,
        Collection.KEYWORD_SETS,
        kind=SelectionKind.MULTI,
        reference=Reference.OPTION,
        depends_on=(Stage.KEYWORD_SET,),
    ),
    StageDescriptor(
        Stage.ANALYSIS,
        Collection.ANALYSES,
        depends_on=(Stage.KEYWORDS,),
        parents=(Stage.KEYWORDS,),
    ),
    StageDescriptor(
        Stage.OBJECTIVE_SET,
        Collection.OBJECTIVE_SETS,
        reference=Reference.SET,
        depends_on=(Stage.ANALYSIS,),
        parents=(Stage.ANALYSIS,),
    ),
    StageDescriptor(
        Stage.OBJECTIVES,
        Collection.OBJECTIVE_SETS,
        kind=SelectionKind.MULTI,
        reference=Reference.OPTION,
        depends_on=(Stage.OBJECTIVE_SET,),
        default_policy=DefaultPolicy.FIRST_THREE,
    ),
    StageDescriptor(
        Stage.TITLE_SET,
        Collection.TITLE_SETS,
        reference=Reference.SET,
        depends_on=(Stage.OBJECTIVES, Stage.KEYWORDS),
        parents=(Stage.OBJECTIVES,),
    ),
    StageDescriptor(
        Stage.TITLE,
        Collection.TITLE_SETS,
        reference=Reference.OPTION,
        depends_on=(Stage.TITLE_SET,),
        default_policy=DefaultPolicy.FIRST,
    ),
    StageDescriptor(
        Stage.META_DESCRIPTION_SET,
        Collection.META_DESCRIPTION_SETS,
        reference=Reference.SET,
        depends_on=(Stage.TITLE,),
        parents=(Stage.TITLE,),
    ),
    StageDescriptor(
        Stage.META_DESCRIPTION,
        Collection.META_DESCRIPTION_SETS,
        reference=Reference.OPTION,
        depends_on=(Stage.META_DESCRIPTION_SET,),
        default_policy=DefaultPolicy.FIRST,
    ),
    StageDescriptor(
        Stage.SAPO_SET,
        Collection.SAPO_SETS,
        reference=Reference.SET,
        depends_on=(Stage.META_DESCRIPTION,),
        parents=(Stage.META_DESCRIPTION,),
    ),
    StageDescriptor(
        Stage.SAPO,
        Collection.SAPO_SETS,
        reference=Reference.OPTION,
        depends_on=(Stage.SAPO_SET,),
        default_policy=DefaultPolicy.FIRST,
    ),
    StageDescriptor(
        Stage.CTA_SET,
        Collection.CTA_SETS,
        reference=Reference.SET,
        depends_on=(Stage.SAPO,),
        parents=(Stage.SAPO,),
    ),
    StageDescriptor(
        Stage.CTAS,
        Collection.CTA_SETS,
        kind=SelectionKind.MULTI,
        reference=Reference.OPTION,
        depends_on=(Stage.CTA_SET,),
        default_policy=DefaultPolicy.NONE,
    ),
    StageDescriptor(
        Stage.OUTLINE,
        Collection.OUTLINES,
        depends_on=(
            Stage.CTAS,
            Stage.PERSONA,
            Stage.KEYWORDS,
            Stage.ANALYSIS,
            Stage.OBJECTIVES,
            Stage.TITLE,
            Stage.META_DESCRIPTION,
        ),
        parents=(Stage.PERSONA, Stage.ANALYSIS),
    ),
    StageDescriptor(
        Stage.IMAGE_SET,
        Collection.IMAGE_SETS,
        reference=Reference.SET,
        depends_on=(Stage.OUTLINE,),
        parents=(Stage.OUTLINE,),
    ),
    StageDescriptor(
        Stage.IMAGES,
        Collection.IMAGE_SETS,
        kind=SelectionKind.MULTI,
        reference=Reference.OPTION,
        depends_on=(Stage.IMAGE_SET,),
        default_policy=DefaultPolicy.ALL,
    ),
    StageDescriptor(
        Stage.FEATURE_IMAGE,
        Collection.IMAGE_SETS,
        reference=Reference.OPTION,
        depends_on=(Stage.IMAGE_SET,),
        default_policy=DefaultPolicy.FIRST,
    ),
    StageDescriptor(
        Stage.ARTICLE,
        Collection.ARTICLES,
        depends_on=(Stage.IMAGES, Stage.FEATURE_IMAGE, Stage.SAPO, Stage.CTAS),
        parents=(Stage.OUTLINE,),
    ),
)


def coerce_stage(value: Stage | str) -> Stage:
    if isinstance(value, Stage):
        return value
    try:
        return Stage(str(value).strip().lower().replace("-", "_"))
    except ValueError as exc:
        raise UnknownStageError(f"Unknown stage '{value}'") from exc


@dataclass(slots=True)
class PipelineGraph:
    """Read-only dependency graph built from a stage table."""

    descriptors: Sequence[StageDescriptor] = STAGE_TABLE
    _by_stage: dict[Stage, StageDescriptor] = field(default_factory=dict, init=False, repr=False)
    _order: dict[Stage, int] = field(default_factory=dict, init=False, repr=False)
    _adjacency: dict[Stage, tuple[Stage, ...]] = field(default_factory=dict, init=False, repr=False)
    _downstream: dict[Stage, tuple[Stage, ...]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.descriptors = tuple(self.descriptors)
        for position, descriptor in enumerate(self.descriptors):
            if descriptor.stage in self._by_stage:
                raise PipelineGraphError(f"Stage '{descriptor.stage.value}' declared twice")
            for upstream in descriptor.depends_on:
                # forward-only references keep the table acyclic by construction
                if upstream not in self._order:
                    raise PipelineGraphError(
                        f"Stage '{descriptor.stage.value}' depends on '{upstream.value}', "
                        "which is not declared before it"
                    )
            if descriptor.reference is Reference.OPTION:
                self._check_option_stage(descriptor)
            self._by_stage[descriptor.stage] = descriptor
            self._order[descriptor.stage] = position

        adjacency: dict[Stage, list[Stage]] = {stage: [] for stage in self._order}
        for descriptor in self.descriptors:
            for upstream in descriptor.depends_on:
                adjacency[upstream].append(descriptor.stage)
        self._adjacency = {stage: tuple(targets) for stage, targets in adjacency.items()}
        self._downstream = {stage: self._walk(stage) for stage in self._order}

    def _check_option_stage(self, descriptor: StageDescriptor) -> None:
        set_stages = [
            self._by_stage[upstream]
            for upstream in descriptor.depends_on
            if upstream in self._by_stage and self._by_stage[upstream].reference is Reference.SET
        ]
        if not any(parent.collection is descriptor.collection for parent in set_stages):
            raise PipelineGraphError(
                f"Option stage '{descriptor.stage.value}' must depend on a set stage "
                f"of collection '{descriptor.collection.value}'"
            )

    def _walk(self, stage: Stage) -> tuple[Stage, ...]:
        seen: set[Stage] = set()
        frontier = list(self._adjacency[stage])
        while frontier:
            current = frontier.pop()
            if current in seen:
                continue
            seen.add(current)
            frontier.extend(self._adjacency[current])
        return tuple(sorted(seen, key=self._order.__getitem__))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(descriptor.stage for descriptor in self.descriptors)

    def descriptor(self, stage: Stage | str) -> StageDescriptor:
        resolved = coerce_stage(stage)
        try:
            return self._by_stage[resolved]
        except KeyError as exc:
            raise UnknownStageError(f"Stage '{resolved.value}' is not part of this pipeline") from exc

    def position(self, stage: Stage | str) -> int:
        return self._order[self.descriptor(stage).stage]

    def direct_downstream(self, stage: Stage | str) -> tuple[Stage, ...]:
        return self._adjacency[self.descriptor(stage).stage]

    def downstream(self, stage: Stage | str) -> tuple[Stage, ...]:
        """Every stage reachable forward from ``stage``, in pipeline order."""

        return self._downstream[self.descriptor(stage).stage]

    def option_stages_for(self, set_stage: Stage | str) -> tuple[StageDescriptor, ...]:
        """Option stages whose candidates live in the sets of ``set_stage``."""

        parent = self.descriptor(set_stage)
        return tuple(
            self._by_stage[child]
            for child in self._adjacency[parent.stage]
            if self._by_stage[child].reference is Reference.OPTION
            and self._by_stage[child].collection is parent.collection
        )

    def stages_for(self, collection: Collection) -> tuple[StageDescriptor, ...]:
        return tuple(d for d in self.descriptors if d.collection is collection)

    def record_stage(self, collection: Collection) -> StageDescriptor:
        """Return the stage that selects sets (or records) of ``collection``."""

        for descriptor in self.descriptors:
            if descriptor.collection is collection and descriptor.reference is not Reference.OPTION:
                return descriptor
        raise UnknownStageError(f"No stage selects from collection '{collection.value}'")

    def empty_selection(self) -> dict[Stage, str | list[str] | None]:
        return {descriptor.stage: descriptor.empty_value() for descriptor in self.descriptors}

    def is_monotonic(self) -> bool:
        """Check that each stage invalidates a superset of what its successor does."""

        stages = self.stages
        for current, following in zip(stages, stages[1:]):
            if not set(self.downstream(current)) >= set(self.downstream(following)):
                return False
        return True


DEFAULT_GRAPH = PipelineGraph()


def describe(graph: PipelineGraph = DEFAULT_GRAPH) -> Mapping[str, list[str]]:
    """Return a serialisable stage → downstream mapping (used by the CLI)."""

    return {stage.value: [s.value for s in graph.downstream(stage)] for stage in graph.stages}
