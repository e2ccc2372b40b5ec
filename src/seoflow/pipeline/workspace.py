"""Workspace facade: store + selections + preferences with write-through persistence."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Mapping, cast

from pydantic import BaseModel

from ..content.assembler import AssemblyContext, DocumentAssembler
from .schema import (
    Analysis,
    Artifact,
    ArtifactSet,
    Document,
    DocumentParts,
    ImageOption,
    Outline,
    Persona,
)
from .selection import SelectionEngine, SelectionValue
from .stages import DEFAULT_GRAPH, Collection, PipelineGraph, Reference, Stage
from .state import DEFAULT_STORAGE_KEY, Preferences, StateFile, WorkspaceSnapshot
from .store import ArtifactStore

__all__ = ["Workspace"]

logger = logging.getLogger(__name__)

# payload fields filled from the active selections when a generator leaves them out
_CONTEXT_FIELDS: dict[Stage, dict[str, Stage]] = {
    Stage.PERSONA: {"product_id": Stage.PRODUCT},
    Stage.ANALYSIS: {"keyword_ids": Stage.KEYWORDS},
    Stage.OUTLINE: {"persona_id": Stage.PERSONA, "analysis_id": Stage.ANALYSIS},
}


class Workspace:
    """Single entry point for every state mutation.

    Each mutating call finishes updating the store and the selections before
    the state file is rewritten, so a reader never observes a half-applied
    change.
    """

    def __init__(
        self,
        *,
        store: ArtifactStore | None = None,
        graph: PipelineGraph = DEFAULT_GRAPH,
        preferences: Preferences | None = None,
        state_file: StateFile | None = None,
    ) -> None:
        self.graph = graph
        self.store = store or ArtifactStore()
        self.selection = SelectionEngine(self.store, graph)
        self.preferences = preferences or Preferences()
        self.state_file = state_file

    @classmethod
    def open(cls, path: Path | str, *, storage_key: str = DEFAULT_STORAGE_KEY) -> "Workspace":
        """Load the workspace saved at ``path``; a missing or corrupt file yields a fresh one."""

        state_file = StateFile(path, storage_key=storage_key)
        snapshot = state_file.load()
        workspace = cls(
            store=ArtifactStore.from_dict(snapshot.store),
            preferences=snapshot.preferences,
            state_file=state_file,
        )
        workspace.selection.load(snapshot.selections)
        return workspace

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            store=self.store.to_dict(),
            selections=self.selection.to_dict(),
            preferences=self.preferences,
        )

    def persist(self) -> None:
        if self.state_file is None:
            return
        path = self.state_file.save(self.snapshot())
        logger.debug("State written to %s", path)

    # ------------------------------------------------------------------
    # Generation results
    # ------------------------------------------------------------------

    def record(self, stage: Stage | str, raw_options: Iterable[Mapping[str, Any] | BaseModel]) -> ArtifactSet:
        """Store a generation result for ``stage`` and select it.

        Record stages (product, persona, analysis, outline, article) take a
        single payload and select it. Set stages select the new set and then
        apply each option stage's default policy.
        """

        descriptor = self.graph.descriptor(stage)
        if descriptor.reference is Reference.OPTION:
            raise ValueError(
                f"Stage '{descriptor.stage.value}' selects options; record its set stage instead"
            )
        options = [self._with_context(descriptor.stage, raw) for raw in raw_options]
        if descriptor.reference is Reference.RECORD and len(options) != 1:
            raise ValueError(f"Stage '{descriptor.stage.value}' stores exactly one record")

        parent_ref = self.selection.parent_ref_for(descriptor.stage)
        set_id = self.store.create_artifact_set(descriptor.collection, parent_ref, options)
        artifact_set = cast(ArtifactSet, self.store.get_set(descriptor.collection, set_id))

        if descriptor.reference is Reference.RECORD:
            self.selection.set_selection(descriptor.stage, artifact_set.options[0].id)
        else:
            self.selection.set_selection(descriptor.stage, set_id)
            self.selection.apply_default_selection(descriptor.stage, artifact_set)
        self.persist()
        return artifact_set

    def add_product(self, product: Mapping[str, Any] | BaseModel) -> Artifact:
        return self.record(Stage.PRODUCT, [product]).options[0]

    def _with_context(self, stage: Stage, raw: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
        payload = raw.model_dump() if isinstance(raw, BaseModel) else dict(raw)
        for field_name, source in _CONTEXT_FIELDS.get(stage, {}).items():
            if payload.get(field_name):
                continue
            value = self.selection.get(source)
            if value:
                payload[field_name] = value
        return payload

    # ------------------------------------------------------------------
    # Selections
    # ------------------------------------------------------------------

    def select(self, stage: Stage | str, value: SelectionValue | list[str]) -> list[Stage]:
        cleared = self.selection.set_selection(stage, value)
        self.persist()
        return cleared

    def toggle(self, stage: Stage | str, artifact_id: str) -> list[str]:
        selected = self.selection.toggle(stage, artifact_id)
        self.persist()
        return selected

    def history(self, stage: Stage | str) -> list[ArtifactSet]:
        """Sets generated for ``stage`` under the currently active upstream context."""

        descriptor = self.graph.descriptor(stage)
        if descriptor.reference is Reference.OPTION:
            descriptor = self.graph.record_stage(descriptor.collection)
        parent_ref = self.selection.parent_ref_for(descriptor.stage)
        return self.store.list_by_parent(descriptor.collection, parent_ref or None)

    # ------------------------------------------------------------------
    # Article assembly
    # ------------------------------------------------------------------

    def body_images(self) -> list[str]:
        """Selected image URLs, excluding the feature image."""

        feature_id = self.selection.get(Stage.FEATURE_IMAGE)
        urls: list[str] = []
        for artifact in self.selection.selected_options(Stage.IMAGES):
            if artifact.id == feature_id:
                continue
            image = self.store.payload(Collection.IMAGE_SETS, artifact.id)
            if isinstance(image, ImageOption):
                urls.append(image.url)
        return urls

    def assembly_context(self) -> AssemblyContext:
        select = self.selection

        def first_text(stage: Stage, attribute: str) -> str | None:
            payload = select.selected_payload(stage)
            return getattr(payload, attribute) if payload is not None else None

        feature = select.selected_payload(Stage.FEATURE_IMAGE)
        persona = select.selected_payload(Stage.PERSONA)
        analysis = select.selected_payload(Stage.ANALYSIS)
        outline = select.selected_payload(Stage.OUTLINE)
        keyword_ids = select.selected_ids(Stage.KEYWORDS)
        return AssemblyContext(
            title=first_text(Stage.TITLE, "title"),
            meta_description=first_text(Stage.META_DESCRIPTION, "description"),
            sapo=first_text(Stage.SAPO, "content"),
            ctas=[payload.content for payload in select.selected_payloads(Stage.CTAS)],  # type: ignore[attr-defined]
            persona=persona if isinstance(persona, Persona) else None,
            analysis=analysis if isinstance(analysis, Analysis) else None,
            outline=outline if isinstance(outline, Outline) else None,
            feature_image=feature.url if isinstance(feature, ImageOption) else None,
            images=self.body_images(),
            persona_id=str(select.get(Stage.PERSONA) or ""),
            analysis_id=str(select.get(Stage.ANALYSIS) or ""),
            outline_id=str(select.get(Stage.OUTLINE) or ""),
            primary_keyword_id=keyword_ids[0] if keyword_ids else None,
            objective_ids=select.selected_ids(Stage.OBJECTIVES),
        )

    def save_document(self, assembler: DocumentAssembler) -> Artifact:
        """Store the merged article in the library and make it the active article."""

        document = assembler.build_document()
        artifact = self.record(Stage.ARTICLE, [document]).options[0]
        logger.info("Saved article %s (%s)", artifact.id, document.title)
        return artifact

    def edit_document_body(self, article_id: str, body: str) -> Artifact:
        """Replace a saved article's body.

        The stored parts are cleared: an edited body is no longer their merge.
        """

        current = self.document(article_id)
        if current is None:
            raise KeyError(f"Unknown article '{article_id}'")
        edited = current.model_copy(update={"body": body, "parts": DocumentParts()})
        artifact = self.store.replace_option(Collection.ARTICLES, article_id, edited)
        self.persist()
        return artifact

    def document(self, article_id: str | None) -> Document | None:
        payload = self.store.payload(Collection.ARTICLES, article_id)
        return payload if isinstance(payload, Document) else None

    def documents(self) -> list[tuple[Artifact, Document]]:
        """Library listing, newest first."""

        listing: list[tuple[Artifact, Document]] = []
        for artifact_set in self.store.list_by_parent(Collection.ARTICLES):
            for artifact in artifact_set.options:
                document = self.document(artifact.id)
                if document is not None:
                    listing.append((artifact, document))
        return listing

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def update_preferences(self, **changes: str) -> Preferences:
        self.preferences = replace(self.preferences, **changes)
        self.persist()
        return self.preferences
