from __future__ import annotations

import asyncio
import logging

import pytest

from seoflow.content.orchestrator import StageOrchestrator
from seoflow.errors import AssemblyPreconditionError, GenerationInProgressError, MissingSelectionError
from seoflow.pipeline.schema import ArticleOptions, Keyword
from seoflow.pipeline.stages import Stage
from seoflow.pipeline.workspace import Workspace


def _run(coro):
    return asyncio.run(coro)


def test_generate_persona_requires_product(workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(workspace, fake_generator)
    with pytest.raises(MissingSelectionError) as excinfo:
        _run(orchestrator.generate_persona())
    assert excinfo.value.missing == ["product"]
    assert fake_generator.calls == []


def test_generate_persona_records_and_selects(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.PRODUCT)
    orchestrator = StageOrchestrator(workspace, fake_generator)

    artifact_set = _run(orchestrator.generate_persona(("standard", "empathy")))

    assert workspace.selection.get(Stage.PERSONA) == artifact_set.options[0].id
    persona = workspace.selection.selected_payload(Stage.PERSONA)
    assert persona.summary == "Persona for Trail Runner X"
    assert persona.models == ["standard", "empathy"]
    assert persona.product_id == workspace.selection.get(Stage.PRODUCT)


def test_generate_keywords_defaults_location_and_selects_nothing(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.PERSONA)
    seen = {}

    async def spy(persona, location=None):
        seen["location"] = location
        return [Keyword(term="trail shoes")]

    fake_generator.generate_keywords = spy
    orchestrator = StageOrchestrator(workspace, fake_generator)

    artifact_set = _run(orchestrator.generate_keywords())

    assert seen["location"] == "US"
    assert workspace.selection.get(Stage.KEYWORD_SET) == artifact_set.id
    assert workspace.selection.get(Stage.KEYWORDS) == []


def test_generate_analysis_needs_keywords_and_content(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.PERSONA)
    orchestrator = StageOrchestrator(workspace, fake_generator)
    with pytest.raises(MissingSelectionError) as excinfo:
        _run(orchestrator.generate_analysis("   "))
    assert excinfo.value.missing == ["keywords", "content"]

    workspace = fill(Workspace(), Stage.KEYWORD_SET)
    orchestrator = StageOrchestrator(workspace, fake_generator)
    _run(orchestrator.generate_analysis("Competitor article text"))
    analysis = workspace.selection.selected_payload(Stage.ANALYSIS)
    assert analysis.summary == "Analysis of 23 chars"
    assert analysis.keyword_ids == workspace.selection.get(Stage.KEYWORDS)


def test_generate_objectives_selects_first_three(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.ANALYSIS)
    orchestrator = StageOrchestrator(workspace, fake_generator)

    artifact_set = _run(orchestrator.generate_objectives())

    assert workspace.selection.get(Stage.OBJECTIVES) == artifact_set.option_ids[:3]


def test_generate_titles_uses_first_selected_keyword(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.OBJECTIVE_SET)
    orchestrator = StageOrchestrator(workspace, fake_generator)

    _run(orchestrator.generate_titles())

    name, titles = fake_generator.calls[-1]
    assert name == "titles"
    assert workspace.selection.selected_payload(Stage.TITLE).title == "running shoes guide"
    assert titles[0].title == "running shoes guide"


def test_failed_generation_leaves_state_unchanged(fill, fake_generator, caplog) -> None:
    workspace = fill(Workspace(), Stage.TITLE_SET)
    before = workspace.selection.to_dict()
    stored = len(workspace.store)
    fake_generator.fail.add("meta_descriptions")
    orchestrator = StageOrchestrator(workspace, fake_generator)

    with caplog.at_level(logging.WARNING, logger="seoflow.content.orchestrator"):
        result = _run(orchestrator.generate_meta_descriptions())

    assert result is None
    assert workspace.selection.to_dict() == before
    assert len(workspace.store) == stored
    assert "returned no result; state unchanged" in caplog.text


def test_generate_ctas_requires_a_sapo(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.META_DESCRIPTION_SET)
    orchestrator = StageOrchestrator(workspace, fake_generator)
    with pytest.raises(MissingSelectionError) as excinfo:
        _run(orchestrator.generate_ctas())
    assert excinfo.value.missing == ["sapo"]

    workspace = fill(Workspace(), Stage.SAPO_SET)
    orchestrator = StageOrchestrator(workspace, fake_generator)
    _run(orchestrator.generate_ctas())
    assert workspace.selection.get(Stage.CTAS) == []
    assert workspace.selection.get(Stage.CTA_SET)


def test_generate_outline_clears_images(ready_workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)

    _run(orchestrator.generate_outline())

    outline = ready_workspace.selection.selected_payload(Stage.OUTLINE)
    assert len(outline.sections) == 4
    assert ready_workspace.selection.get(Stage.IMAGE_SET) is None
    assert ready_workspace.selection.get(Stage.FEATURE_IMAGE) is None


def test_concurrent_requests_for_same_stage_are_rejected(fill, fake_generator) -> None:
    workspace = fill(Workspace(), Stage.OBJECTIVE_SET)
    original = fake_generator.generate_titles

    async def slow_titles(objectives, primary_keyword):
        await asyncio.sleep(0)
        return await original(objectives, primary_keyword)

    fake_generator.generate_titles = slow_titles
    orchestrator = StageOrchestrator(workspace, fake_generator)

    async def both():
        return await asyncio.gather(
            orchestrator.generate_titles(), orchestrator.generate_titles(), return_exceptions=True
        )

    first, second = _run(both())

    assert first.options[0].payload["title"] == "running shoes guide"
    assert isinstance(second, GenerationInProgressError)
    assert not orchestrator.is_busy(Stage.TITLE_SET)


def test_generate_images_uses_outline_prompts(ready_workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)

    artifact_set = _run(orchestrator.generate_images())

    name, images = fake_generator.calls[-1]
    assert name == "images"
    assert len(images) == 3
    assert "Section 1" in images[0].prompt
    assert ready_workspace.selection.get(Stage.IMAGES) == artifact_set.option_ids
    assert ready_workspace.selection.get(Stage.FEATURE_IMAGE) == artifact_set.option_ids[0]

    _run(orchestrator.generate_images(prompt_limit=2))
    assert len(fake_generator.calls[-1][1]) == 2

    with pytest.raises(MissingSelectionError):
        _run(orchestrator.generate_images(["  "]))


def test_start_article_requires_assembly_inputs(fill, fake_generator) -> None:
    orchestrator = StageOrchestrator(fill(Workspace(), Stage.TITLE_SET), fake_generator)
    with pytest.raises(AssemblyPreconditionError):
        orchestrator.start_article()


def test_write_article_generates_parts_in_order_and_merges(ready_workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)

    assembler, state = _run(orchestrator.write_article(options=ArticleOptions(include_faq=True)))

    assert [name for name, _ in fake_generator.calls] == ["article_part1", "article_part2", "article_part3"]
    assert state["failed"] == []
    assert state["body"] == assembler.merge()
    assert state["body"].startswith('<img src="https://img.example/1.png"')
    assert "[IMAGE_" not in state["body"]
    assert state["stats"]["image_count"] == 5
    assert assembler.options.include_faq is True


def test_failed_part_is_reported_and_retried(ready_workspace: Workspace, fake_generator, caplog) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)
    fake_generator.fail.add("article_part2")

    with caplog.at_level(logging.WARNING, logger="seoflow.content.orchestrator"):
        assembler, state = _run(orchestrator.write_article())

    assert state["failed"] == ["part2"]
    assert "body" not in state
    assert assembler.pending_parts() == ["part2"]
    assert "Article parts failed: part2" in caplog.text

    fake_generator.fail.clear()
    _, state = _run(orchestrator.write_article(assembler))

    names = [name for name, _ in fake_generator.calls]
    assert names.count("article_part1") == 1
    assert names.count("article_part2") == 2
    assert state["failed"] == []
    assert "body" in state


def test_regenerate_single_part(ready_workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)
    assembler, _ = _run(orchestrator.write_article())
    assembler.set_part("part3", "hand edited")

    _, state = _run(orchestrator.write_article(assembler, parts=["part3"]))

    assert [name for name, _ in fake_generator.calls].count("article_part3") == 2
    assert "hand edited" not in state["body"]
    assert assembler.part("part3").startswith("## part3")


def test_save_and_evaluate_article(ready_workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)
    assembler, _ = _run(orchestrator.write_article())
    artifact = orchestrator.save_article(assembler)

    result = _run(orchestrator.evaluate_article())

    assert ready_workspace.selection.get(Stage.ARTICLE) == artifact.id
    assert result.score() == (15, 15)
    primary, lsi, objectives = dict(fake_generator.calls)["seo_args"]
    assert primary == "running shoes"
    assert lsi == ["best running shoes", "trail shoes"]
    assert objectives == ["Objective 1", "Objective 2", "Objective 3"]


def test_evaluate_without_article_raises(ready_workspace: Workspace, fake_generator) -> None:
    orchestrator = StageOrchestrator(ready_workspace, fake_generator)
    with pytest.raises(MissingSelectionError):
        _run(orchestrator.evaluate_article())
