"""Append-only artifact store keyed by collection."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, cast

from pydantic import BaseModel, ValidationError

from ..errors import ImmutableArtifactError
from .schema import Artifact, ArtifactSet, PayloadModel, parse_payload
from .stages import Collection

__all__ = ["ArtifactStore"]

logger = logging.getLogger(__name__)

RawOption = Mapping[str, Any] | PayloadModel


class ArtifactStore:
    """Holds every artifact set ever generated.

    Sets are never removed. Each option gets its own id so selections can point
    at individual options as well as whole sets. Only documents in the
    ``articles`` collection may be rewritten in place, and only by replacing
    the option under the same id.
    """

    MUTABLE_COLLECTIONS = frozenset({Collection.ARTICLES})

    def __init__(self) -> None:
        self._sets: dict[Collection, dict[str, ArtifactSet]] = {collection: {} for collection in Collection}
        self._option_index: dict[Collection, dict[str, str]] = {collection: {} for collection in Collection}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_artifact_set(
        self,
        collection: Collection | str,
        parent_ref: Mapping[str, Any] | None,
        raw_options: Iterable[RawOption],
    ) -> str:
        """Validate ``raw_options``, store them as a new set and return its id."""

        bucket = Collection(collection)
        options = [
            Artifact(payload=parse_payload(bucket, raw).model_dump(mode="json"))
            for raw in raw_options
        ]
        artifact_set = ArtifactSet(collection=bucket, parent_ref=dict(parent_ref or {}), options=options)
        self._insert(artifact_set)
        logger.info(
            "Created %s set %s with %d option(s)", bucket.value, artifact_set.id, len(options)
        )
        return artifact_set.id

    def replace_option(self, collection: Collection | str, artifact_id: str, payload: RawOption) -> Artifact:
        bucket = Collection(collection)
        if bucket not in self.MUTABLE_COLLECTIONS:
            raise ImmutableArtifactError(f"Artifacts in '{bucket.value}' cannot be modified")
        set_id = self._option_index[bucket].get(artifact_id)
        if set_id is None:
            raise KeyError(f"Unknown {bucket.value} artifact '{artifact_id}'")

        artifact_set = self._sets[bucket][set_id]
        previous = cast(Artifact, artifact_set.option(artifact_id))
        replacement = previous.model_copy(
            update={"payload": parse_payload(bucket, payload).model_dump(mode="json")}
        )
        options = [replacement if item.id == artifact_id else item for item in artifact_set.options]
        self._sets[bucket][set_id] = artifact_set.model_copy(update={"options": options})
        logger.info("Replaced %s artifact %s", bucket.value, artifact_id)
        return replacement

    def _insert(self, artifact_set: ArtifactSet) -> None:
        bucket = artifact_set.collection
        self._sets[bucket][artifact_set.id] = artifact_set
        for artifact in artifact_set.options:
            self._option_index[bucket][artifact.id] = artifact_set.id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: Collection | str, identifier: str | None) -> Artifact | ArtifactSet | None:
        """Look up a set or an option by id; unknown ids resolve to ``None``."""

        bucket = Collection(collection)
        if not identifier:
            return None
        found = self._sets[bucket].get(identifier)
        if found is not None:
            return found
        set_id = self._option_index[bucket].get(identifier)
        if set_id is None:
            logger.debug("Missing reference %s in %s", identifier, bucket.value)
            return None
        return self._sets[bucket][set_id].option(identifier)

    def get_set(self, collection: Collection | str, set_id: str | None) -> ArtifactSet | None:
        found = self.get(collection, set_id)
        return found if isinstance(found, ArtifactSet) else None

    def get_option(self, collection: Collection | str, artifact_id: str | None) -> Artifact | None:
        found = self.get(collection, artifact_id)
        return found if isinstance(found, Artifact) else None

    def set_of(self, collection: Collection | str, artifact_id: str) -> ArtifactSet | None:
        bucket = Collection(collection)
        set_id = self._option_index[bucket].get(artifact_id)
        return self._sets[bucket].get(set_id) if set_id else None

    def payload(self, collection: Collection | str, artifact_id: str | None) -> PayloadModel | None:
        artifact = self.get_option(collection, artifact_id)
        if artifact is None:
            return None
        try:
            return parse_payload(Collection(collection), artifact.payload)
        except ValidationError as exc:
            logger.debug("Artifact %s has an invalid payload: %s", artifact_id, exc)
            return None

    def list_by_parent(
        self,
        collection: Collection | str,
        parent_ref: Mapping[str, Any] | None = None,
    ) -> list[ArtifactSet]:
        """Return matching sets newest first; later inserts win on equal timestamps."""

        bucket = Collection(collection)
        candidates = list(reversed(list(self._sets[bucket].values())))
        if parent_ref:
            candidates = [item for item in candidates if item.matches(parent_ref)]
        return sorted(candidates, key=lambda item: item.created_at, reverse=True)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._sets.values())

    def count(self, collection: Collection | str) -> int:
        return len(self._sets[Collection(collection)])

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            bucket.value: [item.model_dump(mode="json") for item in sets.values()]
            for bucket, sets in self._sets.items()
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Iterable[Mapping[str, Any] | BaseModel]] | None) -> "ArtifactStore":
        store = cls()
        for key, items in (payload or {}).items():
            try:
                bucket = Collection(key)
            except ValueError:
                logger.warning("Ignoring unknown collection '%s' in saved state", key)
                continue
            for item in items or ():
                try:
                    artifact_set = ArtifactSet.model_validate(item)
                except ValidationError as exc:
                    logger.warning("Skipping malformed %s set in saved state: %s", bucket.value, exc)
                    continue
                if artifact_set.collection is not bucket:
                    artifact_set = artifact_set.model_copy(update={"collection": bucket})
                store._insert(artifact_set)
        return store
