"""LLM tooling for the seoflow content stages."""

from .cost import (
    MODEL_PRICING,
    BudgetExceededError,
    CostSnapshot,
    CostTracker,
    ModelPricing,
    TokenUsage,
    usage_from_response,
)
from .images import ImageBackend, OpenAIImageBackend
from .providers import (
    LangChainChatProvider,
    ProviderDependencyError,
    ProviderError,
    ProviderSettings,
    build_provider,
)

__all__ = [
    "MODEL_PRICING",
    "ModelPricing",
    "TokenUsage",
    "CostSnapshot",
    "BudgetExceededError",
    "CostTracker",
    "usage_from_response",
    "ImageBackend",
    "OpenAIImageBackend",
    "LangChainChatProvider",
    "ProviderError",
    "ProviderDependencyError",
    "ProviderSettings",
    "build_provider",
]
