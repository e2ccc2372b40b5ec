"""Stage orchestration: run a generator for a stage and record the result.

Each ``generate_*`` coroutine reads the active upstream selections from the
workspace, awaits the generator, and only then records the new set (which
also applies default selections and the downstream cascade). A failed
generation leaves the workspace exactly as it was.

Article writing runs as a small LangGraph workflow (part1 -> part2 -> part3 ->
merge) over a :class:`DocumentAssembler`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Sequence, cast

from langgraph.graph import END, START, StateGraph

from ..errors import GenerationInProgressError, MissingSelectionError
from ..graph.states import ArticleWorkflowState
from ..pipeline.schema import ArticleOptions, ArtifactSet, Document, Keyword, Outline, ProductInfo, SeoChecklistResult
from ..pipeline.stages import Collection, Stage
from ..pipeline.workspace import Workspace
from .assembler import PARTS, DocumentAssembler
from .generator import ContentGenerator, collect_lsi_keywords, image_prompts_for

__all__ = ["StageOrchestrator"]

logger = logging.getLogger(__name__)


class StageOrchestrator:
    """Drives the generator stage by stage against one workspace."""

    def __init__(
        self,
        workspace: Workspace,
        generator: ContentGenerator,
        *,
        words_per_minute: int = 225,
    ) -> None:
        self.workspace = workspace
        self.generator = generator
        self.words_per_minute = words_per_minute
        self._in_flight: set[str] = set()

    @contextmanager
    def _guard(self, key: str) -> Iterator[None]:
        if key in self._in_flight:
            raise GenerationInProgressError(f"Generation for '{key}' is already running")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def is_busy(self, key: Stage | str) -> bool:
        return (key.value if isinstance(key, Stage) else key) in self._in_flight

    # ------------------------------------------------------------------
    # Context helpers
    # ------------------------------------------------------------------

    def _require(self, action: str, **values: Any) -> None:
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise MissingSelectionError(missing, action=action)

    def _payload(self, stage: Stage):
        return self.workspace.selection.selected_payload(stage)

    def _texts(self, stage: Stage, attribute: str) -> list[str]:
        return [getattr(payload, attribute) for payload in self.workspace.selection.selected_payloads(stage)]

    def _keywords(self) -> list[Keyword]:
        return [kw for kw in self.workspace.selection.selected_payloads(Stage.KEYWORDS) if isinstance(kw, Keyword)]

    def _record(self, stage: Stage, result: Sequence[Any] | None) -> ArtifactSet | None:
        if not result:
            logger.warning("Generation for %s returned no result; state unchanged", stage.value)
            return None
        return self.workspace.record(stage, list(result))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def generate_persona(self, models: Sequence[str] = ("standard",)) -> ArtifactSet | None:
        product = self._payload(Stage.PRODUCT)
        self._require("generate persona", product=product)
        with self._guard(Stage.PERSONA.value):
            persona = await self.generator.generate_persona(cast(ProductInfo, product), models)
            return self._record(Stage.PERSONA, [persona] if persona else None)

    async def generate_keywords(self, location: str | None = None) -> ArtifactSet | None:
        persona = self._payload(Stage.PERSONA)
        self._require("generate keywords", persona=persona)
        product = self._payload(Stage.PRODUCT)
        if location is None and isinstance(product, ProductInfo):
            location = product.location
        with self._guard(Stage.KEYWORD_SET.value):
            keywords = await self.generator.generate_keywords(persona, location)  # type: ignore[arg-type]
            return self._record(Stage.KEYWORD_SET, keywords)

    async def generate_analysis(self, content: str) -> ArtifactSet | None:
        persona = self._payload(Stage.PERSONA)
        terms = [keyword.term for keyword in self._keywords()]
        self._require("analyze content", persona=persona, keywords=terms, content=content.strip())
        with self._guard(Stage.ANALYSIS.value):
            analysis = await self.generator.generate_analysis(terms, persona, content)  # type: ignore[arg-type]
            return self._record(Stage.ANALYSIS, [analysis] if analysis else None)

    async def generate_objectives(self) -> ArtifactSet | None:
        analysis = self._payload(Stage.ANALYSIS)
        self._require("generate objectives", analysis=analysis)
        with self._guard(Stage.OBJECTIVE_SET.value):
            options = await self.generator.generate_objectives(analysis)  # type: ignore[arg-type]
            return self._record(Stage.OBJECTIVE_SET, options)

    async def generate_titles(self) -> ArtifactSet | None:
        objectives = self._texts(Stage.OBJECTIVES, "description")
        keywords = self._keywords()
        self._require("generate titles", objectives=objectives, keywords=keywords)
        with self._guard(Stage.TITLE_SET.value):
            options = await self.generator.generate_titles(objectives, keywords[0].term)
            return self._record(Stage.TITLE_SET, options)

    async def generate_meta_descriptions(self) -> ArtifactSet | None:
        title = self._payload(Stage.TITLE)
        keywords = self._keywords()
        self._require("generate meta descriptions", title=title, keywords=keywords)
        with self._guard(Stage.META_DESCRIPTION_SET.value):
            options = await self.generator.generate_meta_descriptions(title.title, keywords[0].term)  # type: ignore[union-attr]
            return self._record(Stage.META_DESCRIPTION_SET, options)

    async def generate_sapos(self) -> ArtifactSet | None:
        title = self._payload(Stage.TITLE)
        persona = self._payload(Stage.PERSONA)
        keywords = self._keywords()
        self._require("generate sapos", title=title, persona=persona, keywords=keywords)
        with self._guard(Stage.SAPO_SET.value):
            options = await self.generator.generate_sapos(title.title, keywords[0].term, persona)  # type: ignore[union-attr, arg-type]
            return self._record(Stage.SAPO_SET, options)

    async def generate_ctas(self) -> ArtifactSet | None:
        objectives = self._texts(Stage.OBJECTIVES, "description")
        persona = self._payload(Stage.PERSONA)
        self._require("generate CTAs", objectives=objectives, persona=persona, sapo=self._payload(Stage.SAPO))
        with self._guard(Stage.CTA_SET.value):
            options = await self.generator.generate_ctas(objectives, persona)  # type: ignore[arg-type]
            return self._record(Stage.CTA_SET, options)

    async def generate_outline(self) -> ArtifactSet | None:
        analysis = self._payload(Stage.ANALYSIS)
        persona = self._payload(Stage.PERSONA)
        title = self._payload(Stage.TITLE)
        meta = self._payload(Stage.META_DESCRIPTION)
        objectives = self._texts(Stage.OBJECTIVES, "description")
        keywords = self._keywords()
        self._require(
            "generate outline",
            analysis=analysis,
            persona=persona,
            title=title,
            meta_description=meta,
            keywords=keywords,
        )
        with self._guard(Stage.OUTLINE.value):
            outline = await self.generator.generate_outline(
                analysis,  # type: ignore[arg-type]
                persona,  # type: ignore[arg-type]
                title.title,  # type: ignore[union-attr]
                meta.description,  # type: ignore[union-attr]
                objectives,
                keywords[0],
            )
            return self._record(Stage.OUTLINE, [outline] if outline else None)

    async def generate_images(
        self, prompts: Sequence[str] | None = None, *, prompt_limit: int = 4
    ) -> ArtifactSet | None:
        outline = self._payload(Stage.OUTLINE)
        self._require("generate images", outline=outline)
        if prompts is None:
            prompts = image_prompts_for(cast(Outline, outline), prompt_limit)
        chosen = [prompt for prompt in prompts if prompt.strip()]
        self._require("generate images", prompts=chosen)
        with self._guard(Stage.IMAGE_SET.value):
            images = await self.generator.generate_images(chosen)
            return self._record(Stage.IMAGE_SET, images)

    # ------------------------------------------------------------------
    # Article
    # ------------------------------------------------------------------

    def start_article(self, options: ArticleOptions | None = None) -> DocumentAssembler:
        """Build an assembler from the active selections (raises if any input is missing)."""

        return DocumentAssembler(self.workspace.assembly_context(), options)

    async def generate_part(self, assembler: DocumentAssembler, part: str) -> str | None:
        """Generate (or regenerate) one article part; failures keep the previous text."""

        plan = assembler.plan_for(part)
        context = assembler.context
        with self._guard(f"article_{part}"):
            text = await self.generator.generate_article_section(
                plan,
                title=context.title or "",
                sapo=context.sapo or "",
                persona=context.persona,  # type: ignore[arg-type]
                analysis=context.analysis,  # type: ignore[arg-type]
                options=assembler.options,
            )
        if text is None or not text.strip():
            logger.warning("Generation for article %s returned no text", part)
            return None
        assembler.set_part(part, text)
        return text

    def _build_article_graph(self, assembler: DocumentAssembler):
        graph = StateGraph(ArticleWorkflowState)
        for part in PARTS:
            graph.add_node(part, self._part_node(assembler, part))
        graph.add_node("merge", self._merge_node(assembler))

        graph.add_edge(START, PARTS[0])
        for current, following in zip(PARTS, PARTS[1:]):
            graph.add_edge(current, following)
        graph.add_edge(PARTS[-1], "merge")
        graph.add_edge("merge", END)
        return graph.compile()

    def _part_node(self, assembler: DocumentAssembler, part: str):
        async def node(state: ArticleWorkflowState) -> ArticleWorkflowState:
            if part not in state.get("requested", []):
                return {"parts": assembler.parts}
            text = await self.generate_part(assembler, part)
            if text is None:
                return {"failed": [*state.get("failed", []), part]}
            return {"parts": assembler.parts}

        return node

    def _merge_node(self, assembler: DocumentAssembler):
        async def node(state: ArticleWorkflowState) -> ArticleWorkflowState:
            if not assembler.is_complete:
                return {"parts": assembler.parts}
            return {
                "body": assembler.merge(),
                "stats": assembler.stats(self.words_per_minute).to_dict(),
            }

        return node

    async def write_article(
        self,
        assembler: DocumentAssembler | None = None,
        *,
        options: ArticleOptions | None = None,
        parts: Sequence[str] | None = None,
    ) -> tuple[DocumentAssembler, ArticleWorkflowState]:
        """Generate the requested parts (default: all still empty) and merge when complete."""

        assembler = assembler or self.start_article(options)
        requested = list(parts) if parts is not None else assembler.pending_parts()
        initial: ArticleWorkflowState = {
            "parts": assembler.parts,
            "requested": requested,
            "failed": [],
        }
        final_state = await self._build_article_graph(assembler).ainvoke(initial)
        if final_state.get("failed"):
            logger.warning("Article parts failed: %s", ", ".join(final_state["failed"]))
        return assembler, final_state

    def save_article(self, assembler: DocumentAssembler):
        return self.workspace.save_document(assembler)

    async def evaluate_article(self, article_id: str | None = None) -> SeoChecklistResult | None:
        """Run the SEO checklist against a saved article (defaults to the active one)."""

        article_id = article_id or self.workspace.selection.get(Stage.ARTICLE)  # type: ignore[assignment]
        document = self.workspace.document(article_id)
        self._require("evaluate article", article=document)
        document = cast(Document, document)

        store = self.workspace.store
        primary = store.payload(Collection.KEYWORD_SETS, document.primary_keyword_id)
        primary_keywords = [primary] if isinstance(primary, Keyword) else []
        objectives = []
        for objective_id in document.objective_ids:
            payload = store.payload(Collection.OBJECTIVE_SETS, objective_id)
            if payload is not None:
                objectives.append(payload.description)  # type: ignore[attr-defined]

        with self._guard("seo_evaluation"):
            result = await self.generator.evaluate_seo(
                document,
                primary_keyword=primary_keywords[0].term if primary_keywords else "",
                lsi_keywords=collect_lsi_keywords(primary_keywords),
                objectives=objectives,
            )
        if result is None:
            logger.warning("SEO evaluation returned no result")
        return result

