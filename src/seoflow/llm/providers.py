"""LangChain chat provider used by the content generators."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Tuple

from langchain_core.messages import BaseMessage

try:  # pragma: no cover - import guard for optional dependency
    from langchain_openai import ChatOpenAI
except ImportError:  # pragma: no cover - surfaced as ProviderDependencyError on use
    ChatOpenAI = None  # type: ignore[assignment]

__all__ = [
    "ProviderError",
    "ProviderDependencyError",
    "ProviderSettings",
    "LangChainChatProvider",
    "build_provider",
]

MessagesLike = Sequence[BaseMessage] | Sequence[Mapping[str, Any]]

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
MODEL_ENVS: Tuple[str, ...] = ("SEOFLOW_MODEL", "OPENAI_MODEL")
API_KEY_ENVS: Tuple[str, ...] = ("SEOFLOW_API_KEY", "OPENAI_API_KEY")
BASE_URL_ENVS: Tuple[str, ...] = ("SEOFLOW_BASE_URL", "OPENAI_BASE_URL")
TEMPERATURE_ENV = "SEOFLOW_TEMPERATURE"
MAX_TOKENS_ENV = "SEOFLOW_MAX_TOKENS"


class ProviderError(RuntimeError):
    """Raised when a generation request to a model backend fails."""


class ProviderDependencyError(ProviderError):
    """Raised when the client library for a backend is not installed."""


@dataclass(slots=True)
class ProviderSettings:
    """Connection and sampling settings handed to ``ChatOpenAI``."""

    model: str = DEFAULT_MODEL
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int | None = None
    timeout: float | None = None

    @classmethod
    def from_env(cls, **explicit: Any) -> "ProviderSettings":
        """Fill every unset field from ``SEOFLOW_*`` and then ``OPENAI_*`` variables."""

        given = {key: value for key, value in explicit.items() if value is not None}
        return cls(
            model=given.get("model") or _first_env(MODEL_ENVS) or DEFAULT_MODEL,
            base_url=given.get("base_url") or _first_env(BASE_URL_ENVS),
            api_key=given.get("api_key") or _first_env(API_KEY_ENVS),
            temperature=given.get("temperature", _env_number(TEMPERATURE_ENV, float, DEFAULT_TEMPERATURE)),
            max_tokens=given.get("max_tokens", _env_number(MAX_TOKENS_ENV, int, None)),
            timeout=given.get("timeout"),
        )

    def as_kwargs(self) -> dict[str, Any]:
        optional = {
            "base_url": self.base_url,
            "api_key": self.api_key,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
        }
        kwargs: dict[str, Any] = {"model": self.model, "temperature": self.temperature}
        kwargs.update({key: value for key, value in optional.items() if value})
        return kwargs


class LangChainChatProvider:
    """Async wrapper around ``langchain_openai.ChatOpenAI``.

    Every client failure, whether a network error, a rate limit or a refusal,
    comes back as :class:`ProviderError` so content stages only handle one
    error type.
    """

    def __init__(self, settings: ProviderSettings):
        if ChatOpenAI is None:
            raise ProviderDependencyError("langchain-openai is required for content generation")
        self.settings = settings
        try:
            self._client = ChatOpenAI(**settings.as_kwargs())  # type: ignore[arg-type]
        except Exception as exc:  # pragma: no cover - passthrough
            raise ProviderError(f"Could not create chat model '{settings.model}': {exc}") from exc

    @property
    def model(self) -> str:
        return self.settings.model

    async def ainvoke(self, messages: MessagesLike, **kwargs: Any) -> Any:
        try:
            return await self._client.ainvoke(messages, **kwargs)
        except Exception as exc:
            raise ProviderError(f"Request to '{self.settings.model}' failed: {exc}") from exc


def build_provider(
    *,
    model: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float | None = None,
) -> LangChainChatProvider:
    """Create a provider; explicit arguments win over the environment."""

    settings = ProviderSettings.from_env(
        model=model,
        base_url=base_url,
        api_key=api_key,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    return LangChainChatProvider(settings)


def _first_env(names: Sequence[str]) -> str | None:
    return next((os.environ[name] for name in names if os.getenv(name)), None)


def _env_number(name: str, convert, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return convert(raw)
    except ValueError:
        return default
