"""Pydantic models for artifacts, artifact sets and stage payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional, Union
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .stages import Collection

__all__ = [
    "FrozenBaseModel",
    "PayloadModel",
    "Artifact",
    "ArtifactSet",
    "ProductInfo",
    "PersonaDetails",
    "EmpathyMap",
    "ValueProposition",
    "JobsToBeDone",
    "JourneyStage",
    "CustomerJourneyMap",
    "MentalModel",
    "Persona",
    "Keyword",
    "BreakthroughPoints",
    "Source",
    "Analysis",
    "ObjectiveOption",
    "TitleOption",
    "MetaDescriptionOption",
    "SapoOption",
    "CtaOption",
    "OutlineSection",
    "Outline",
    "ImageOption",
    "ArticleOptions",
    "DocumentParts",
    "Document",
    "SeoChecklistItem",
    "SeoChecklistResult",
    "WRITING_STYLES",
    "PAYLOAD_MODELS",
    "new_id",
    "utc_timestamp",
    "parse_payload",
]

WritingStyle = Literal[
    "default",
    "pas",
    "3s",
    "aidasas",
    "storytelling",
    "expository",
    "persuasive",
    "descriptive",
    "narrative",
    "technical",
    "conversational",
]
WRITING_STYLES: tuple[str, ...] = WritingStyle.__args__  # type: ignore[attr-defined]


def new_id() -> str:
    return str(uuid4())


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class FrozenBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class PayloadModel(FrozenBaseModel):
    """Payload base that also accepts the camelCase keys produced by generators."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Store records
# ---------------------------------------------------------------------------


class Artifact(FrozenBaseModel):
    """A single generated candidate: id, creation time and opaque payload."""

    id: str = Field(default_factory=new_id)
    created_at: str = Field(default_factory=utc_timestamp)
    payload: Dict[str, Any] = Field(default_factory=dict)


class ArtifactSet(FrozenBaseModel):
    """One generation call's output: ordered options plus the context it came from."""

    id: str = Field(default_factory=new_id)
    created_at: str = Field(default_factory=utc_timestamp)
    collection: Collection
    parent_ref: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    options: List[Artifact] = Field(default_factory=list)

    def option(self, artifact_id: str) -> Optional[Artifact]:
        for artifact in self.options:
            if artifact.id == artifact_id:
                return artifact
        return None

    @property
    def option_ids(self) -> list[str]:
        return [artifact.id for artifact in self.options]

    def matches(self, parent_ref: Mapping[str, Any]) -> bool:
        return all(self.parent_ref.get(key) == value for key, value in parent_ref.items())


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class ProductInfo(PayloadModel):
    name: str
    price: Optional[str] = None
    desired_outcome: Optional[str] = None
    location: Optional[str] = None


class PersonaDetails(PayloadModel):
    demographics: str = ""
    goals: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)


class EmpathyMap(PayloadModel):
    says: List[str] = Field(default_factory=list)
    thinks: List[str] = Field(default_factory=list)
    does: List[str] = Field(default_factory=list)
    feels: List[str] = Field(default_factory=list)


class ValueProposition(PayloadModel):
    customer_jobs: List[str] = Field(default_factory=list)
    pains: List[str] = Field(default_factory=list)
    gains: List[str] = Field(default_factory=list)
    products_services: List[str] = Field(default_factory=list)
    pain_relievers: List[str] = Field(default_factory=list)
    gain_creators: List[str] = Field(default_factory=list)


class JobsToBeDone(PayloadModel):
    job_statement: str = ""
    functional_aspects: List[str] = Field(default_factory=list)
    emotional_aspects: List[str] = Field(default_factory=list)
    social_aspects: List[str] = Field(default_factory=list)


class JourneyStage(PayloadModel):
    actions: List[str] = Field(default_factory=list)
    pain_points: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)


class CustomerJourneyMap(PayloadModel):
    awareness: JourneyStage = Field(default_factory=JourneyStage)
    consideration: JourneyStage = Field(default_factory=JourneyStage)
    decision: JourneyStage = Field(default_factory=JourneyStage)


class MentalModel(PayloadModel):
    core_beliefs: List[str] = Field(default_factory=list)
    thought_process: str = ""
    information_structure: str = ""


PersonaModelName = Literal["standard", "empathy", "value-prop", "jtbd", "journey", "mental"]


class Persona(PayloadModel):
    """Audience profile; the optional blocks depend on which models were requested."""

    product_id: str = ""
    summary: str
    models: List[PersonaModelName] = Field(default_factory=lambda: ["standard"])
    details: Optional[PersonaDetails] = None
    empathy_map: Optional[EmpathyMap] = None
    value_proposition: Optional[ValueProposition] = None
    jtbd: Optional[JobsToBeDone] = None
    journey: Optional[CustomerJourneyMap] = None
    mental_model: Optional[MentalModel] = None


class Keyword(PayloadModel):
    term: str
    relevance: float = 0.0
    search_volume: int = 0
    competition: Literal["Low", "Medium", "High"] = "Medium"
    kei: float = 0.0
    kgr: float = 0.0
    intent: Literal["Informational", "Navigational", "Commercial", "Transactional"] = "Informational"
    lsi_keywords: List[str] = Field(default_factory=list)


class BreakthroughPoints(PayloadModel):
    unique_insights: str = ""
    human_experience_eeat: str = Field(
        default="",
        validation_alias=AliasChoices("humanExperienceEEAT", "human_experience_eeat", "humanExperienceEeat"),
    )
    hcu_exploitation: str = ""


class Source(PayloadModel):
    title: str = ""
    uri: str = ""


class Analysis(PayloadModel):
    """Competitive analysis for the selected keywords."""

    keyword_ids: List[str] = Field(default_factory=list)
    summary: str
    objectives: List[str] = Field(default_factory=list)
    content_gaps: List[str] = Field(default_factory=list)
    creative_ideas: List[str] = Field(default_factory=list)
    breakthroughs: BreakthroughPoints = Field(default_factory=BreakthroughPoints)
    sources: List[Source] = Field(default_factory=list)


class ObjectiveOption(PayloadModel):
    description: str
    rationale: str = ""
    score: float = 0.0


class TitleOption(PayloadModel):
    title: str
    rationale: str = ""
    score: float = 0.0


class MetaDescriptionOption(PayloadModel):
    description: str
    rationale: str = ""
    score: float = 0.0


class SapoOption(PayloadModel):
    content: str
    rationale: str = ""


class CtaOption(PayloadModel):
    content: str
    rationale: str = ""


class OutlineSection(PayloadModel):
    heading: str = Field(validation_alias=AliasChoices("h2", "heading"))
    bullets: List[str] = Field(default_factory=list)


class Outline(PayloadModel):
    persona_id: str = ""
    analysis_id: str = ""
    sections: List[OutlineSection] = Field(default_factory=list)


class ImageOption(PayloadModel):
    url: str
    prompt: str = ""


class ArticleOptions(PayloadModel):
    """Knobs passed to article-part generation and stored on the document."""

    writing_style: WritingStyle = "default"
    include_faq: bool = False
    use_inverted_pyramid: bool = False
    optimize_for_ai_overview: bool = False
    use_tables: bool = False
    use_quotes: bool = False
    add_wikipedia_links: bool = False
    internal_links: List[str] = Field(default_factory=list)
    external_links: List[str] = Field(default_factory=list)

    def generation_options(self) -> dict[str, Any]:
        return self.model_dump(exclude={"writing_style"})


class DocumentParts(PayloadModel):
    part1: str = ""
    part2: str = ""
    part3: str = ""


class Document(PayloadModel):
    """Terminal artifact: merged body plus the context it was assembled from."""

    title: str
    body: str = Field(validation_alias=AliasChoices("body", "content"))
    parts: DocumentParts = Field(default_factory=DocumentParts)
    meta_description: str = ""
    sapo: str = ""
    cta: str = ""
    ctas: List[str] = Field(default_factory=list)
    outline_id: str = ""
    feature_image: str = ""
    images: List[str] = Field(default_factory=list)
    persona_id: str = ""
    analysis_id: str = ""
    primary_keyword_id: str = ""
    objective_ids: List[str] = Field(default_factory=list)
    writing_style: WritingStyle = "default"
    generation_options: Dict[str, Any] = Field(default_factory=dict)


class SeoChecklistItem(PayloadModel):
    passed: bool = Field(default=False, validation_alias=AliasChoices("pass", "passed"))
    reason: str = ""


class SeoChecklistResult(PayloadModel):
    primary_keyword: SeoChecklistItem
    title: SeoChecklistItem
    meta_description: SeoChecklistItem
    sapo: SeoChecklistItem
    ai_overview: SeoChecklistItem
    h1: SeoChecklistItem
    headings: SeoChecklistItem
    writing_style: SeoChecklistItem
    tables: SeoChecklistItem
    trust: SeoChecklistItem
    expertise: SeoChecklistItem
    images: SeoChecklistItem
    faqs: SeoChecklistItem
    objectives: SeoChecklistItem
    creativity: SeoChecklistItem

    def score(self) -> tuple[int, int]:
        items = [getattr(self, name) for name in type(self).model_fields]
        return sum(1 for item in items if item.passed), len(items)


PAYLOAD_MODELS: dict[Collection, type[PayloadModel]] = {
    Collection.PRODUCTS: ProductInfo,
    Collection.PERSONAS: Persona,
    Collection.KEYWORD_SETS: Keyword,
    Collection.ANALYSES: Analysis,
    Collection.OBJECTIVE_SETS: ObjectiveOption,
    Collection.TITLE_SETS: TitleOption,
    Collection.META_DESCRIPTION_SETS: MetaDescriptionOption,
    Collection.SAPO_SETS: SapoOption,
    Collection.CTA_SETS: CtaOption,
    Collection.OUTLINES: Outline,
    Collection.IMAGE_SETS: ImageOption,
    Collection.ARTICLES: Document,
}


def parse_payload(collection: Collection, raw: Mapping[str, Any] | PayloadModel) -> PayloadModel:
    """Validate ``raw`` against the payload model registered for ``collection``."""

    model = PAYLOAD_MODELS[collection]
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    return model.model_validate(raw)
