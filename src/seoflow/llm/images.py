"""Image generation backends for the image stage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

try:  # pragma: no cover - import guard for optional dependency
    from openai import AsyncOpenAI
except ImportError:  # pragma: no cover - surfaced as ProviderDependencyError on use
    AsyncOpenAI = None  # type: ignore[assignment]

from .providers import ProviderDependencyError, ProviderError

__all__ = ["ImageBackend", "OpenAIImageBackend"]

logger = logging.getLogger(__name__)


class ImageBackend(Protocol):
    """Turns one prompt into one image URL (``http(s)://`` or ``data:`` URL)."""

    async def generate(self, prompt: str) -> str: ...


@dataclass(slots=True)
class OpenAIImageBackend:
    """Images API backend; base64 responses are returned as PNG data URLs."""

    model: str = "dall-e-3"
    size: str = "1792x1024"
    quality: str = "standard"
    api_key: str | None = None
    base_url: str | None = None

    def _client(self):
        if AsyncOpenAI is None:
            raise ProviderDependencyError("openai is required to use OpenAIImageBackend")
        return AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    async def generate(self, prompt: str) -> str:
        client = self._client()
        try:
            response = await client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=self.size,  # type: ignore[arg-type]
                quality=self.quality,  # type: ignore[arg-type]
            )
        except Exception as exc:
            raise ProviderError(f"Image generation failed for model '{self.model}': {exc}") from exc

        image = response.data[0] if response.data else None
        if image is None:
            raise ProviderError(f"Image model '{self.model}' returned no data")
        if image.url:
            return image.url
        if image.b64_json:
            return f"data:image/png;base64,{image.b64_json}"
        raise ProviderError(f"Image model '{self.model}' returned neither a URL nor image bytes")
