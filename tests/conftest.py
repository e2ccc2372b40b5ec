"""Shared fixtures for the test suite."""
from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Iterable

import pytest

from seoflow.llm.cost import CostTracker, ModelPricing
from seoflow.pipeline.schema import (
    Analysis,
    CtaOption,
    ImageOption,
    Keyword,
    MetaDescriptionOption,
    ObjectiveOption,
    Outline,
    Persona,
    SapoOption,
    SeoChecklistResult,
    TitleOption,
)
from seoflow.pipeline.stages import Stage
from seoflow.pipeline.workspace import Workspace

ENV_VARS = {
    "SEOFLOW_MODEL",
    "OPENAI_MODEL",
    "SEOFLOW_API_KEY",
    "SEOFLOW_API_KEY_ENV",
    "OPENAI_API_KEY",
    "SEOFLOW_BASE_URL",
    "OPENAI_BASE_URL",
    "SEOFLOW_TEMPERATURE",
    "SEOFLOW_MAX_TOKENS",
    "SEOFLOW_TIMEOUT",
    "SEOFLOW_BUDGET_USD",
    "SEOFLOW_BUDGET_WARN_RATIO",
    "SEOFLOW_BUDGET_HARD",
    "SEOFLOW_LANGUAGE",
    "SEOFLOW_WORDS_PER_MINUTE",
    "SEOFLOW_WRITING_STYLE",
    "SEOFLOW_STORAGE_KEY",
    "SEOFLOW_IMAGE_MODEL",
    "SEOFLOW_IMAGE_PROMPTS",
}


@pytest.fixture(autouse=True)
def _clear_llm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure LLM-related environment variables do not leak between tests."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def dummy_chat_model(monkeypatch: pytest.MonkeyPatch):
    """Patch the LangChain chat client used by the provider abstraction.

    Queue replies on ``DummyChatModel.replies``; each call pops the first one.
    A reply that is an exception instance is raised instead.
    """

    from seoflow.llm import providers

    class DummyChatModel:
        replies: list[Any] = []
        instances: list["DummyChatModel"] = []

        def __init__(self, **kwargs: Any) -> None:
            self.kwargs = kwargs
            self.invocations: list[tuple[str, tuple[Iterable[Any], dict[str, Any]]]] = []
            DummyChatModel.instances.append(self)

        def _next(self) -> Any:
            reply = DummyChatModel.replies.pop(0) if DummyChatModel.replies else ""
            if isinstance(reply, Exception):
                raise reply
            return SimpleNamespace(
                content=reply,
                usage_metadata={"input_tokens": 100, "output_tokens": 50},
            )

        async def ainvoke(self, messages: Iterable[Any], **kwargs: Any) -> Any:
            self.invocations.append(("ainvoke", (tuple(messages), dict(kwargs))))
            return self._next()

    monkeypatch.setattr(providers, "ChatOpenAI", DummyChatModel)
    return DummyChatModel


@pytest.fixture
def dummy_cost_tracker() -> CostTracker:
    """Provide a cost tracker with deterministic pricing for tests."""

    pricing = {
        "stub-model": ModelPricing(prompt_per_1k=0.001, completion_per_1k=0.002),
        "alt-model": ModelPricing(prompt_per_1k=0.01, completion_per_1k=0.02),
    }
    return CostTracker(pricing=pricing, budget_limit=5.0, warn_ratio=0.5)


# ---------------------------------------------------------------------------
# Pipeline content
# ---------------------------------------------------------------------------


def outline_payload(count: int = 6) -> dict[str, Any]:
    return {
        "sections": [
            {"h2": f"Section {index}", "bullets": [f"point {index}a", f"point {index}b"]}
            for index in range(1, count + 1)
        ]
    }


KEYWORDS = [
    {"term": "running shoes", "searchVolume": 5400, "kei": 12.5, "kgr": 0.2, "intent": "Commercial",
     "lsiKeywords": ["best running shoes", "trail shoes"]},
    {"term": "marathon training", "searchVolume": 2900, "kei": 8, "kgr": 0.15, "intent": "Informational",
     "lsiKeywords": ["marathon plan"]},
]


def fill_until(workspace: Workspace, last: Stage) -> Workspace:
    """Record canned results stage by stage (selecting defaults) up to ``last``."""

    steps: list[tuple[Stage, Any]] = [
        (Stage.PRODUCT, [{"name": "Trail Runner X", "price": "$120", "location": "US"}]),
        (Stage.PERSONA, [{"summary": "Weekend trail runner", "models": ["standard"]}]),
        (Stage.KEYWORD_SET, KEYWORDS),
        (Stage.ANALYSIS, [{"summary": "Runners want grip", "objectives": ["Explain grip"]}]),
        (Stage.OBJECTIVE_SET, [{"description": f"Objective {i}"} for i in range(1, 5)]),
        (Stage.TITLE_SET, [{"title": "Best Trail Shoes / 2024 Guide"}, {"title": "Trail Shoes Compared"}]),
        (Stage.META_DESCRIPTION_SET, [{"description": "Find your shoe."}, {"description": "Compare shoes."}]),
        (Stage.SAPO_SET, [{"content": "Trail running needs grip."}]),
        (Stage.CTA_SET, [{"content": "Buy now"}, {"content": "Join the club"}, {"content": "Read more"}]),
        (Stage.OUTLINE, [outline_payload()]),
        (Stage.IMAGE_SET, [{"url": f"https://img.example/{i}.png", "prompt": f"p{i}"} for i in range(1, 6)]),
    ]
    for stage, options in steps:
        artifact_set = workspace.record(stage, options)
        if stage is Stage.KEYWORD_SET:
            workspace.select(Stage.KEYWORDS, artifact_set.option_ids)
        if stage is Stage.CTA_SET:
            workspace.select(Stage.CTAS, artifact_set.option_ids)
        if stage is last:
            break
    return workspace


@pytest.fixture
def workspace() -> Workspace:
    return Workspace()


@pytest.fixture
def ready_workspace() -> Workspace:
    """Workspace with every stage up to the image set generated and selected."""

    return fill_until(Workspace(), Stage.IMAGE_SET)


class FakeGenerator:
    """Canned :class:`ContentGenerator` that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.fail: set[str] = set()

    def _result(self, name: str, value: Any) -> Any:
        self.calls.append((name, value))
        return None if name in self.fail else value

    async def generate_persona(self, product, models=("standard",)):
        return self._result("persona", Persona(summary=f"Persona for {product.name}", models=list(models)))

    async def generate_keywords(self, persona, location=None):
        return self._result("keywords", [Keyword.model_validate(item) for item in KEYWORDS])

    async def generate_analysis(self, keywords, persona, content):
        return self._result("analysis", Analysis(summary=f"Analysis of {len(content)} chars"))

    async def generate_objectives(self, analysis):
        return self._result("objectives", [ObjectiveOption(description=f"Goal {i}") for i in range(1, 5)])

    async def generate_titles(self, objectives, primary_keyword):
        return self._result("titles", [TitleOption(title=f"{primary_keyword} guide"), TitleOption(title="Other")])

    async def generate_meta_descriptions(self, title, keyword):
        return self._result("meta_descriptions", [MetaDescriptionOption(description=f"About {title}")])

    async def generate_sapos(self, title, keyword, persona):
        return self._result("sapos", [SapoOption(content=f"Intro to {title}")])

    async def generate_ctas(self, objectives, persona):
        return self._result("ctas", [CtaOption(content="Buy"), CtaOption(content="Subscribe")])

    async def generate_outline(self, analysis, persona, title, meta_description, objectives, keyword):
        return self._result("outline", Outline.model_validate(outline_payload(4)))

    async def generate_images(self, prompts):
        return self._result(
            "images", [ImageOption(url=f"https://img.example/gen{i}.png", prompt=p) for i, p in enumerate(prompts)]
        )

    async def generate_article_section(self, plan, *, title, sapo, persona, analysis, options):
        placeholders = " ".join(f"[IMAGE_{i}]" for i in range(1, len(plan.images) + 1))
        headings = " ".join(section.heading for section in plan.sections)
        return self._result(f"article_{plan.part}", f"## {plan.part} {headings} {placeholders}".strip())

    async def evaluate_seo(self, document, *, primary_keyword, lsi_keywords, objectives):
        item = {"pass": True, "reason": "ok"}
        fields = SeoChecklistResult.model_fields
        self.calls.append(("seo_args", (primary_keyword, list(lsi_keywords), list(objectives))))
        return self._result("seo_evaluation", SeoChecklistResult.model_validate({name: item for name in fields}))


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fill():
    """Return the helper that records canned stage results up to a stage."""

    return fill_until
