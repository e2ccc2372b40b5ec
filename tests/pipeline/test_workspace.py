from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from seoflow.content.assembler import DocumentAssembler
from seoflow.errors import AssemblyPreconditionError, StateFileError
from seoflow.pipeline.schema import Document, DocumentParts, Persona
from seoflow.pipeline.stages import Collection, Stage
from seoflow.pipeline.state import Preferences, StateFile
from seoflow.pipeline.workspace import Workspace


def _complete(assembler: DocumentAssembler) -> DocumentAssembler:
    for part in ("part1", "part2", "part3"):
        assembler.set_part(part, f"{part} text")
    return assembler


def test_record_product_selects_it_and_clears_downstream(fill) -> None:
    workspace = fill(Workspace(), Stage.TITLE_SET)
    assert workspace.selection.get(Stage.TITLE)

    artifact = workspace.add_product({"name": "Another product"})

    assert workspace.selection.get(Stage.PRODUCT) == artifact.id
    assert workspace.selection.get(Stage.PERSONA) is None
    assert workspace.selection.get(Stage.TITLE) is None
    assert workspace.selection.get(Stage.KEYWORDS) == []


def test_record_fills_context_fields(fill) -> None:
    workspace = fill(Workspace(), Stage.OUTLINE)
    persona = workspace.selection.selected_payload(Stage.PERSONA)
    analysis = workspace.selection.selected_payload(Stage.ANALYSIS)
    outline = workspace.selection.selected_payload(Stage.OUTLINE)

    assert isinstance(persona, Persona)
    assert persona.product_id == workspace.selection.get(Stage.PRODUCT)
    assert analysis.keyword_ids == workspace.selection.get(Stage.KEYWORDS)
    assert outline.persona_id == workspace.selection.get(Stage.PERSONA)
    assert outline.analysis_id == workspace.selection.get(Stage.ANALYSIS)


def test_record_set_stage_applies_defaults(ready_workspace: Workspace) -> None:
    selection = ready_workspace.selection
    objectives_set = selection.selected_set(Stage.OBJECTIVES)

    assert selection.get(Stage.OBJECTIVES) == objectives_set.option_ids[:3]
    assert selection.get(Stage.TITLE) == selection.selected_set(Stage.TITLE).option_ids[0]
    image_set = selection.selected_set(Stage.IMAGES)
    assert selection.get(Stage.IMAGES) == image_set.option_ids
    assert selection.get(Stage.FEATURE_IMAGE) == image_set.option_ids[0]


def test_record_rejects_option_stages_and_multi_record(workspace: Workspace) -> None:
    with pytest.raises(ValueError):
        workspace.record(Stage.TITLE, [{"title": "x"}])
    with pytest.raises(ValueError):
        workspace.record(Stage.PRODUCT, [{"name": "a"}, {"name": "b"}])


def test_history_is_scoped_to_active_context(fill) -> None:
    workspace = fill(Workspace(), Stage.TITLE_SET)
    first = workspace.history(Stage.TITLE_SET)[0]
    second = workspace.record(Stage.TITLE_SET, [{"title": "Another"}])

    history = workspace.history(Stage.TITLE)
    assert [item.id for item in history] == [second.id, first.id]

    objectives = workspace.selection.get(Stage.OBJECTIVES)
    workspace.select(Stage.OBJECTIVES, objectives[:1])
    assert workspace.history(Stage.TITLE_SET) == []


def test_body_images_exclude_feature_image(ready_workspace: Workspace) -> None:
    urls = ready_workspace.body_images()
    assert urls == [f"https://img.example/{i}.png" for i in range(2, 6)]


def test_assembly_context_collects_selected_text(ready_workspace: Workspace) -> None:
    context = ready_workspace.assembly_context()
    assert context.title == "Best Trail Shoes / 2024 Guide"
    assert context.meta_description == "Find your shoe."
    assert context.sapo == "Trail running needs grip."
    assert context.ctas == ["Buy now", "Join the club", "Read more"]
    assert context.feature_image == "https://img.example/1.png"
    assert context.primary_keyword_id == ready_workspace.selection.get(Stage.KEYWORDS)[0]
    assert len(context.objective_ids) == 3


def test_assembly_requires_ctas(ready_workspace: Workspace) -> None:
    context = ready_workspace.assembly_context()
    context.ctas = []
    with pytest.raises(AssemblyPreconditionError) as excinfo:
        DocumentAssembler(context)
    assert excinfo.value.missing == ["ctas"]


def test_save_document_requires_primary_keyword(ready_workspace: Workspace) -> None:
    assembler = _complete(DocumentAssembler(ready_workspace.assembly_context()))
    assembler.context.primary_keyword_id = None
    with pytest.raises(AssemblyPreconditionError):
        ready_workspace.save_document(assembler)
    assert ready_workspace.documents() == []


def test_save_and_edit_document(ready_workspace: Workspace) -> None:
    assembler = _complete(DocumentAssembler(ready_workspace.assembly_context()))
    artifact = ready_workspace.save_document(assembler)

    assert ready_workspace.selection.get(Stage.ARTICLE) == artifact.id
    document = ready_workspace.document(artifact.id)
    assert isinstance(document, Document)
    assert document.cta == "Buy now"
    assert document.parts.part2 == "part2 text"

    ready_workspace.edit_document_body(artifact.id, "edited body")
    edited = ready_workspace.document(artifact.id)
    assert edited.body == "edited body"
    assert edited.title == document.title
    assert edited.parts == DocumentParts()
    with pytest.raises(KeyError):
        ready_workspace.edit_document_body("missing", "x")


def test_documents_listed_newest_first(ready_workspace: Workspace) -> None:
    first = ready_workspace.save_document(_complete(DocumentAssembler(ready_workspace.assembly_context())))
    second = ready_workspace.save_document(_complete(DocumentAssembler(ready_workspace.assembly_context())))
    assert [artifact.id for artifact, _ in ready_workspace.documents()] == [second.id, first.id]


def test_workspace_persists_and_restores(tmp_path: Path, fill) -> None:
    path = tmp_path / "state" / "state.json"
    workspace = fill(Workspace.open(path), Stage.TITLE_SET)
    workspace.update_preferences(language="vi", user_name="Lan")

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert "app-storage" in saved

    restored = Workspace.open(path)
    assert restored.selection.to_dict() == workspace.selection.to_dict()
    assert restored.store.to_dict() == workspace.store.to_dict()
    assert restored.preferences == Preferences(language="vi", theme="light", user_name="Lan")
    assert restored.selection.selected_payload(Stage.TITLE).title == "Best Trail Shoes / 2024 Guide"


def test_missing_and_corrupt_state_start_fresh(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert len(Workspace.open(tmp_path / "absent.json").store) == 0

    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        workspace = Workspace.open(corrupt)
    assert len(workspace.store) == 0
    assert "starting fresh" in caplog.text


def test_state_file_uses_storage_key(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"other-key": {"selections": {"title": "t"}}}), encoding="utf-8")
    snapshot = StateFile(path).load()
    assert snapshot.selections == {}

    snapshot = StateFile(path, storage_key="other-key").load()
    assert snapshot.selections == {"title": "t"}


def test_state_file_write_errors_are_wrapped(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    with pytest.raises(StateFileError):
        Workspace.open(blocker / "state.json").add_product({"name": "x"})


def test_invalid_preferences_fall_back_to_defaults() -> None:
    assert Preferences.from_dict({"language": "fr", "theme": "dark"}) == Preferences()
    assert Preferences.from_dict({"userName": "Minh"}).user_name == "Minh"
    with pytest.raises(ValueError):
        Preferences(theme="sepia")


def test_persona_change_clears_downstream_and_keeps_history(ready_workspace: Workspace) -> None:
    ready_workspace.save_document(_complete(DocumentAssembler(ready_workspace.assembly_context())))
    product_id = ready_workspace.selection.get(Stage.PRODUCT)
    persona_id = ready_workspace.selection.get(Stage.PERSONA)
    counts = {collection: ready_workspace.store.count(collection) for collection in Collection}

    cleared = ready_workspace.select(Stage.PERSONA, persona_id)

    downstream = ready_workspace.graph.downstream(Stage.PERSONA)
    assert {Stage.KEYWORD_SET, Stage.ANALYSIS, Stage.OUTLINE, Stage.ARTICLE} <= set(downstream)
    assert Stage.PRODUCT not in downstream
    assert set(cleared) <= set(downstream)
    assert ready_workspace.selection.get(Stage.PRODUCT) == product_id
    assert ready_workspace.selection.get(Stage.PERSONA) == persona_id
    for stage in downstream:
        assert ready_workspace.selection.get(stage) in (None, [])
    assert {collection: ready_workspace.store.count(collection) for collection in Collection} == counts


def _saved_state(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_state(path: Path, saved: dict) -> None:
    path.write_text(json.dumps(saved), encoding="utf-8")


def test_malformed_saved_set_is_skipped(tmp_path: Path, fill, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "state.json"
    fill(Workspace.open(path), Stage.TITLE_SET)
    saved = _saved_state(path)
    saved["app-storage"]["store"]["keyword_sets"].append({"id": "truncated"})
    _write_state(path, saved)

    with caplog.at_level(logging.WARNING, logger="seoflow.pipeline.store"):
        restored = Workspace.open(path)

    assert "Skipping malformed keyword_sets set" in caplog.text
    assert restored.store.count(Collection.KEYWORD_SETS) == 1
    assert restored.store.get(Collection.KEYWORD_SETS, "truncated") is None
    assert restored.selection.selected_payload(Stage.TITLE).title == "Best Trail Shoes / 2024 Guide"


def test_invalid_saved_payload_reads_as_unset(tmp_path: Path, fill) -> None:
    path = tmp_path / "state.json"
    fill(Workspace.open(path), Stage.IMAGE_SET)
    saved = _saved_state(path)
    saved["app-storage"]["store"]["products"][0]["options"][0]["payload"] = {}
    image_sets = saved["app-storage"]["store"]["image_sets"]
    image_sets[0]["options"][1]["payload"] = {"prompt": "no url"}
    _write_state(path, saved)

    restored = Workspace.open(path)

    assert restored.selection.get(Stage.PRODUCT)
    assert restored.selection.selected_payload(Stage.PRODUCT) is None
    assert restored.body_images() == [f"https://img.example/{i}.png" for i in range(3, 6)]
    assert restored.selection.selected_payload(Stage.TITLE).title == "Best Trail Shoes / 2024 Guide"
