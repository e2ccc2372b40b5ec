from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from seoflow.errors import ImmutableArtifactError
from seoflow.pipeline.schema import ArtifactSet, Document, TitleOption
from seoflow.pipeline.stages import Collection
from seoflow.pipeline.store import ArtifactStore


def _titles(store: ArtifactStore, *titles: str, parent_ref=None) -> str:
    return store.create_artifact_set(Collection.TITLE_SETS, parent_ref or {}, [{"title": t} for t in titles])


def test_create_set_assigns_ids_and_preserves_order() -> None:
    store = ArtifactStore()
    set_id = _titles(store, "A", "B", "C")

    artifact_set = store.get_set(Collection.TITLE_SETS, set_id)
    assert isinstance(artifact_set, ArtifactSet)
    assert [option.payload["title"] for option in artifact_set.options] == ["A", "B", "C"]
    assert len(set(artifact_set.option_ids)) == 3
    assert set_id not in artifact_set.option_ids


def test_get_resolves_set_or_option_ids() -> None:
    store = ArtifactStore()
    set_id = _titles(store, "A", "B")
    option_id = store.get_set(Collection.TITLE_SETS, set_id).option_ids[1]

    assert isinstance(store.get(Collection.TITLE_SETS, set_id), ArtifactSet)
    assert store.get_option(Collection.TITLE_SETS, option_id).payload["title"] == "B"
    assert store.set_of(Collection.TITLE_SETS, option_id).id == set_id
    assert isinstance(store.payload(Collection.TITLE_SETS, option_id), TitleOption)


def test_unknown_reference_is_none_and_logged(caplog: pytest.LogCaptureFixture) -> None:
    store = ArtifactStore()
    with caplog.at_level(logging.DEBUG, logger="seoflow.pipeline.store"):
        assert store.get(Collection.TITLE_SETS, "missing") is None
    assert "Missing reference missing" in caplog.text
    assert store.get(Collection.TITLE_SETS, None) is None


def test_invalid_payload_is_rejected() -> None:
    store = ArtifactStore()
    with pytest.raises(ValidationError):
        store.create_artifact_set(Collection.TITLE_SETS, {}, [{"rationale": "no title"}])
    assert store.count(Collection.TITLE_SETS) == 0


def test_camel_case_payload_keys_are_normalised() -> None:
    store = ArtifactStore()
    set_id = store.create_artifact_set(
        Collection.KEYWORD_SETS, {}, [{"term": "shoes", "searchVolume": 10, "lsiKeywords": ["a"]}]
    )
    payload = store.get_set(Collection.KEYWORD_SETS, set_id).options[0].payload
    assert payload["search_volume"] == 10
    assert payload["lsi_keywords"] == ["a"]


def test_list_by_parent_filters_and_orders_newest_first() -> None:
    store = ArtifactStore()
    first = _titles(store, "A", parent_ref={"objectives_ids": ["o1"]})
    _titles(store, "B", parent_ref={"objectives_ids": ["o2"]})
    third = _titles(store, "C", parent_ref={"objectives_ids": ["o1"]})

    listed = store.list_by_parent(Collection.TITLE_SETS, {"objectives_ids": ["o1"]})
    assert [item.id for item in listed] == [third, first]
    assert len(store.list_by_parent(Collection.TITLE_SETS)) == 3


def test_list_by_parent_breaks_timestamp_ties_by_insertion() -> None:
    stamp = "2024-01-01T00:00:00+00:00"
    saved = {
        "title_sets": [
            {"id": "older", "created_at": stamp, "collection": "title_sets", "options": []},
            {"id": "newer", "created_at": stamp, "collection": "title_sets", "options": []},
        ]
    }
    store = ArtifactStore.from_dict(saved)
    assert [item.id for item in store.list_by_parent(Collection.TITLE_SETS)] == ["newer", "older"]


def test_replace_option_only_allowed_for_articles() -> None:
    store = ArtifactStore()
    set_id = _titles(store, "A")
    option_id = store.get_set(Collection.TITLE_SETS, set_id).option_ids[0]
    with pytest.raises(ImmutableArtifactError):
        store.replace_option(Collection.TITLE_SETS, option_id, {"title": "B"})

    article_set = store.create_artifact_set(Collection.ARTICLES, {}, [{"title": "T", "body": "old"}])
    article_id = store.get_set(Collection.ARTICLES, article_set).option_ids[0]
    replaced = store.replace_option(Collection.ARTICLES, article_id, {"title": "T", "body": "new"})

    assert replaced.id == article_id
    document = store.payload(Collection.ARTICLES, article_id)
    assert isinstance(document, Document)
    assert document.body == "new"
    with pytest.raises(KeyError):
        store.replace_option(Collection.ARTICLES, "missing", {"title": "T", "body": "x"})


def test_round_trip_through_dict() -> None:
    store = ArtifactStore()
    set_id = _titles(store, "A", "B", parent_ref={"objectives_ids": ["o1"]})

    restored = ArtifactStore.from_dict(store.to_dict())
    assert len(restored) == 1
    assert restored.get_set(Collection.TITLE_SETS, set_id) == store.get_set(Collection.TITLE_SETS, set_id)


def test_from_dict_ignores_unknown_collections(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        store = ArtifactStore.from_dict({"bogus": [{"collection": "bogus"}]})
    assert len(store) == 0
    assert "unknown collection 'bogus'" in caplog.text


def test_from_dict_skips_malformed_sets(caplog: pytest.LogCaptureFixture) -> None:
    store = ArtifactStore()
    set_id = _titles(store, "A")
    saved = store.to_dict()
    saved["title_sets"].append({"id": "truncated", "options": "not a list"})

    with caplog.at_level(logging.WARNING):
        restored = ArtifactStore.from_dict(saved)

    assert restored.count(Collection.TITLE_SETS) == 1
    assert restored.get_set(Collection.TITLE_SETS, set_id) is not None
    assert "Skipping malformed title_sets set" in caplog.text


def test_payload_that_fails_validation_resolves_to_none() -> None:
    store = ArtifactStore()
    set_id = _titles(store, "A")
    saved = store.to_dict()
    saved["title_sets"][0]["options"][0]["payload"] = {"title": None}
    option_id = saved["title_sets"][0]["options"][0]["id"]

    restored = ArtifactStore.from_dict(saved)

    assert restored.get_option(Collection.TITLE_SETS, option_id) is not None
    assert restored.payload(Collection.TITLE_SETS, option_id) is None
    assert restored.get_set(Collection.TITLE_SETS, set_id) is not None
