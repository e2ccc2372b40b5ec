"""Dataclass-driven configuration for seoflow, with environment fallbacks."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

from .llm.cost import CostTracker
from .paths import WorkspacePathConfig, resolve_export_path, resolve_state_path
from .pipeline.schema import ArticleOptions
from .pipeline.state import DEFAULT_STORAGE_KEY, LANGUAGES

__all__ = [
    "LLMConfig",
    "ImageConfig",
    "BudgetConfig",
    "WritingConfig",
    "SeoflowConfig",
]


def _env_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:  # pragma: no cover
        return default


def _env_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:  # pragma: no cover
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class LLMConfig:
    """Configuration for the LangChain chat provider."""

    model: str = field(default_factory=lambda: os.getenv("SEOFLOW_MODEL", "gpt-4o-mini"))
    base_url: str | None = field(
        default_factory=lambda: os.getenv("SEOFLOW_BASE_URL") or os.getenv("OPENAI_BASE_URL")
    )
    temperature: float = field(default_factory=lambda: _env_float("SEOFLOW_TEMPERATURE", 0.7) or 0.0)
    max_tokens: int | None = field(default_factory=lambda: _env_int("SEOFLOW_MAX_TOKENS"))
    timeout: float | None = field(default_factory=lambda: _env_float("SEOFLOW_TIMEOUT"))
    api_key_env: str = field(default_factory=lambda: os.getenv("SEOFLOW_API_KEY_ENV", "SEOFLOW_API_KEY"))
    fallback_api_key_envs: tuple[str, ...] = ("OPENAI_API_KEY",)

    def resolve_api_key(self, override: str | None = None) -> str | None:
        if override:
            return override
        env_candidates: Iterable[str | None] = (self.api_key_env, *self.fallback_api_key_envs)
        for name in env_candidates:
            if not name:
                continue
            value = os.getenv(name)
            if value:
                return value
        return None

    def provider_kwargs(
        self,
        *,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, object | None]:
        return {
            "model": model or self.model,
            "base_url": base_url or self.base_url,
            "api_key": api_key if api_key is not None else self.resolve_api_key(),
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
            "timeout": self.timeout,
        }


@dataclass(slots=True)
class ImageConfig:
    """Settings for the image stage backend."""

    model: str = field(default_factory=lambda: os.getenv("SEOFLOW_IMAGE_MODEL", "dall-e-3"))
    size: str = field(default_factory=lambda: os.getenv("SEOFLOW_IMAGE_SIZE", "1792x1024"))
    quality: str = field(default_factory=lambda: os.getenv("SEOFLOW_IMAGE_QUALITY", "standard"))
    prompt_limit: int = field(default_factory=lambda: _env_int("SEOFLOW_IMAGE_PROMPTS", 4) or 4)


@dataclass(slots=True)
class BudgetConfig:
    """Budget guardrails for LLM spend."""

    limit_usd: float | None = field(default_factory=lambda: _env_float("SEOFLOW_BUDGET_USD"))
    warn_ratio: float = field(default_factory=lambda: _env_float("SEOFLOW_BUDGET_WARN_RATIO", 0.9) or 0.9)
    hard_limit: bool = field(default_factory=lambda: _env_bool("SEOFLOW_BUDGET_HARD"))

@dataclass(slots=True)
class WritingConfig:
    """Defaults for generated text."""

    language: str = field(default_factory=lambda: os.getenv("SEOFLOW_LANGUAGE", "en"))
    words_per_minute: int = field(default_factory=lambda: _env_int("SEOFLOW_WORDS_PER_MINUTE", 225) or 225)
    writing_style: str = field(default_factory=lambda: os.getenv("SEOFLOW_WRITING_STYLE", "default"))

    def __post_init__(self) -> None:
        if self.language not in LANGUAGES:
            raise ValueError(f"Unsupported language '{self.language}'; expected one of {LANGUAGES}")
        if self.words_per_minute <= 0:
            raise ValueError("words_per_minute must be positive")

    def article_options(self, **overrides: object) -> ArticleOptions:
        return ArticleOptions.model_validate({"writing_style": self.writing_style, **overrides})


@dataclass(slots=True)
class SeoflowConfig:
    """Primary configuration entry point."""

    paths: WorkspacePathConfig = field(default_factory=WorkspacePathConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    writing: WritingConfig = field(default_factory=WritingConfig)
    storage_key: str = field(default_factory=lambda: os.getenv("SEOFLOW_STORAGE_KEY", DEFAULT_STORAGE_KEY))
    track_costs: bool = True

    def with_paths(
        self, *, state_path: Path | str | None = None, export_root: Path | str | None = None
    ) -> "SeoflowConfig":
        new_paths = replace(
            self.paths,
            state_path=resolve_state_path(state_path or self.paths.state_path),
            export_root=resolve_export_path(export_root or self.paths.export_root, create=False),
        )
        return replace(self, paths=new_paths)

    @property
    def state_path(self) -> Path:
        return resolve_state_path(self.paths.state_path)

    @property
    def export_root(self) -> Path:
        return resolve_export_path(self.paths.export_root, create=self.paths.create_exports)

    def as_provider_kwargs(self, **overrides: object) -> dict[str, object | None]:
        return self.llm.provider_kwargs(**overrides)  # type: ignore[arg-type]

    def cost_tracker(self) -> CostTracker | None:
        if not self.track_costs:
            return None
        return CostTracker(
            budget_limit=self.budget.limit_usd,
            warn_ratio=self.budget.warn_ratio,
            hard_limit=self.budget.hard_limit,
        )
