"""Per-stage selection state with cascading invalidation."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from ..errors import UnknownStageError
from .schema import Artifact, ArtifactSet, PayloadModel, parse_payload
from .stages import DEFAULT_GRAPH, PipelineGraph, Reference, Stage, StageDescriptor
from .store import ArtifactStore

__all__ = ["SelectionValue", "SelectionEngine"]

logger = logging.getLogger(__name__)

SelectionValue = str | list[str] | None


class SelectionEngine:
    """Owns the current selection of every stage.

    ``set_selection`` always clears every downstream stage, even when the new
    value equals the current one; re-selecting is how a stale chain is reset
    after a stage was regenerated in place.
    """

    def __init__(self, store: ArtifactStore, graph: PipelineGraph = DEFAULT_GRAPH) -> None:
        self.store = store
        self.graph = graph
        self._state: dict[Stage, SelectionValue] = graph.empty_selection()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_selection(self, stage: Stage | str, value: SelectionValue | Sequence[str]) -> list[Stage]:
        """Write ``value`` for ``stage`` and reset everything downstream of it.

        Returns the stages that were cleared, in pipeline order.
        """

        descriptor = self.graph.descriptor(stage)
        self._state[descriptor.stage] = self._normalise(descriptor, value)
        cleared = list(self.graph.downstream(descriptor.stage))
        for downstream in cleared:
            self._state[downstream] = self.graph.descriptor(downstream).empty_value()
        logger.info(
            "Selected %s=%s; cleared %d downstream stage(s)",
            descriptor.stage.value,
            self._state[descriptor.stage],
            len(cleared),
        )
        return cleared

    def clear(self, stage: Stage | str) -> list[Stage]:
        descriptor = self.graph.descriptor(stage)
        return self.set_selection(descriptor.stage, descriptor.empty_value())

    def toggle(self, stage: Stage | str, artifact_id: str) -> list[str]:
        """Add or remove one id from a multi-select stage."""

        descriptor = self.graph.descriptor(stage)
        if not descriptor.is_multi:
            raise ValueError(f"Stage '{descriptor.stage.value}' does not support multi-select")
        current = list(self.get(descriptor.stage) or [])
        if artifact_id in current:
            current.remove(artifact_id)
        else:
            current.append(artifact_id)
        self.set_selection(descriptor.stage, current)
        return current

    def apply_default_selection(self, set_stage: Stage | str, artifact_set: ArtifactSet) -> dict[Stage, SelectionValue]:
        """Adopt each option stage's default policy for a freshly created set.

        Option stages are handled in pipeline order and their own cascade is
        applied, so the result equals a user picking the defaults one by one.
        """

        applied: dict[Stage, SelectionValue] = {}
        option_ids = artifact_set.option_ids
        for descriptor in self.graph.option_stages_for(set_stage):
            picked = descriptor.default_policy.pick(option_ids)
            value: SelectionValue = picked if descriptor.is_multi else (picked[0] if picked else None)
            # sibling option stages share a parent, so cascading from one never clears another
            self.set_selection(descriptor.stage, value)
            applied[descriptor.stage] = value
        return applied

    def _normalise(self, descriptor: StageDescriptor, value: Any) -> SelectionValue:
        if descriptor.is_multi:
            if value is None:
                return []
            if isinstance(value, str):
                return [value]
            return [str(item) for item in value]
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ValueError(f"Stage '{descriptor.stage.value}' accepts a single id, got {value!r}")
        return value

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get(self, stage: Stage | str) -> SelectionValue:
        value = self._state[self.graph.descriptor(stage).stage]
        return list(value) if isinstance(value, list) else value

    def selected_ids(self, stage: Stage | str) -> list[str]:
        value = self.get(stage)
        if value is None:
            return []
        return value if isinstance(value, list) else [value]

    def selected_set(self, stage: Stage | str) -> ArtifactSet | None:
        """Return the artifact set backing ``stage``'s current selection."""

        descriptor = self.graph.descriptor(stage)
        if descriptor.reference is Reference.SET:
            return self.store.get_set(descriptor.collection, self.get(descriptor.stage))  # type: ignore[arg-type]
        if descriptor.reference is Reference.OPTION:
            parent = self._set_stage_for(descriptor)
            return self.selected_set(parent.stage) if parent else None
        ids = self.selected_ids(descriptor.stage)
        return self.store.set_of(descriptor.collection, ids[0]) if ids else None

    def selected_options(self, stage: Stage | str) -> list[Artifact]:
        """Resolve the selected ids to artifacts, skipping stale or unknown ids."""

        descriptor = self.graph.descriptor(stage)
        if descriptor.reference is Reference.SET:
            return []
        scope = self.selected_set(descriptor.stage) if descriptor.reference is Reference.OPTION else None
        resolved: list[Artifact] = []
        for artifact_id in self.selected_ids(descriptor.stage):
            if descriptor.reference is Reference.OPTION:
                if scope is None:
                    break
                artifact = scope.option(artifact_id)
            else:
                artifact = self.store.get_option(descriptor.collection, artifact_id)
            if artifact is None:
                logger.debug("Selection %s -> %s is stale", descriptor.stage.value, artifact_id)
                continue
            resolved.append(artifact)
        return resolved

    def selected_artifact(self, stage: Stage | str) -> Artifact | None:
        options = self.selected_options(stage)
        return options[0] if options else None

    def selected_payload(self, stage: Stage | str) -> PayloadModel | None:
        payloads = self.selected_payloads(stage)
        return payloads[0] if payloads else None

    def selected_payloads(self, stage: Stage | str) -> list[PayloadModel]:
        """Typed payloads of the selection; a payload that no longer validates reads as unset."""

        descriptor = self.graph.descriptor(stage)
        payloads: list[PayloadModel] = []
        for item in self.selected_options(stage):
            try:
                payloads.append(parse_payload(descriptor.collection, item.payload))
            except ValidationError as exc:
                logger.debug(
                    "Selection %s -> %s has an invalid payload: %s", descriptor.stage.value, item.id, exc
                )
        return payloads

    def parent_ref_for(self, stage: Stage | str) -> dict[str, str | list[str]]:
        """Build the ``parent_ref`` recorded on sets generated for ``stage``."""

        descriptor = self.graph.descriptor(stage)
        ref: dict[str, str | list[str]] = {}
        for parent in descriptor.parents:
            value = self.get(parent)
            if value is None or value == []:
                continue
            suffix = "_ids" if isinstance(value, list) else "_id"
            ref[f"{parent.value}{suffix}"] = value
        return ref

    def _set_stage_for(self, descriptor: StageDescriptor) -> StageDescriptor | None:
        for upstream in descriptor.depends_on:
            candidate = self.graph.descriptor(upstream)
            if candidate.reference is Reference.SET and candidate.collection is descriptor.collection:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[Stage, SelectionValue]:
        return {stage: self.get(stage) for stage in self.graph.stages}

    def to_dict(self) -> dict[str, SelectionValue]:
        return {stage.value: value for stage, value in self.snapshot().items()}

    def load(self, payload: Mapping[str, Any] | None) -> None:
        """Restore saved selections without cascading; unknown keys are ignored."""

        self._state = self.graph.empty_selection()
        for key, value in (payload or {}).items():
            try:
                descriptor = self.graph.descriptor(key)
            except UnknownStageError:
                logger.debug("Ignoring saved selection for unknown stage '%s'", key)
                continue
            try:
                self._state[descriptor.stage] = self._normalise(descriptor, value)
            except ValueError:
                logger.debug("Ignoring malformed saved selection for '%s'", key)
