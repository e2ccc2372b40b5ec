"""Token accounting per pipeline stage, with optional budget enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, NamedTuple

__all__ = [
    "MODEL_PRICING",
    "ModelPricing",
    "TokenUsage",
    "CostSnapshot",
    "BudgetExceededError",
    "CostTracker",
    "usage_from_response",
]


@dataclass(frozen=True, slots=True)
class ModelPricing:
    """USD per 1K prompt and completion tokens."""

    prompt_per_1k: float
    completion_per_1k: float

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (prompt_tokens * self.prompt_per_1k + completion_tokens * self.completion_per_1k) / 1000


MODEL_PRICING: Dict[str, ModelPricing] = {
    "gpt-4o-mini": ModelPricing(prompt_per_1k=0.00015, completion_per_1k=0.0006),
    "gpt-4o": ModelPricing(prompt_per_1k=0.005, completion_per_1k=0.015),
    "gpt-4.1-mini": ModelPricing(prompt_per_1k=0.0004, completion_per_1k=0.0016),
    "o4-mini": ModelPricing(prompt_per_1k=0.0011, completion_per_1k=0.0044),
}


@dataclass(slots=True)
class TokenUsage:
    """Running tally for one stage, e.g. ``titles`` or ``article_part2``."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float = 0.0
    calls: int = 0


class CostSnapshot(NamedTuple):
    stage: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float


class BudgetExceededError(RuntimeError):
    """Raised when recorded spend breaches a configured hard limit."""


@dataclass(slots=True)
class CostTracker:
    """Spend per generation stage for one CLI run.

    Models missing from ``pricing`` are counted at zero cost so their token
    usage still shows up in :meth:`summary`.
    """

    pricing: Mapping[str, ModelPricing] = field(default_factory=lambda: MODEL_PRICING)
    budget_limit: float | None = None
    warn_ratio: float = 0.9
    hard_limit: bool = True
    _stages: Dict[str, TokenUsage] = field(default_factory=dict, init=False, repr=False)

    @property
    def total_cost(self) -> float:
        return sum(usage.cost_usd for usage in self._stages.values())

    def record(self, stage: str, model: str, prompt_tokens: int, completion_tokens: int) -> CostSnapshot:
        pricing = self.pricing.get(model)
        cost = pricing.estimate_cost(prompt_tokens, completion_tokens) if pricing else 0.0
        usage = self._stages.setdefault(stage, TokenUsage())
        usage.prompt_tokens += prompt_tokens
        usage.completion_tokens += completion_tokens
        usage.cost_usd += cost
        usage.calls += 1

        total = self.total_cost
        if self.hard_limit and self.budget_limit is not None and total > self.budget_limit:
            raise BudgetExceededError(f"Budget limit {self.budget_limit:.2f} USD exceeded: {total:.4f}")
        return CostSnapshot(stage, model, prompt_tokens, completion_tokens, cost)

    def should_warn(self) -> bool:
        if self.budget_limit is None:
            return False
        return self.total_cost >= self.budget_limit * self.warn_ratio

    def usage_for_stage(self, stage: str) -> TokenUsage | None:
        return self._stages.get(stage)

    def remaining_budget(self) -> float | None:
        if self.budget_limit is None:
            return None
        return max(self.budget_limit - self.total_cost, 0.0)

    def summary(self) -> str:
        """One line per stage, used for the end-of-command usage log."""

        lines = [
            f"{stage}: {usage.calls} call(s), {usage.prompt_tokens}+{usage.completion_tokens} tokens, ${usage.cost_usd:.4f}"
            for stage, usage in self._stages.items()
        ]
        lines.append(f"total: ${self.total_cost:.4f}")
        return "\n".join(lines)


def usage_from_response(response: Any) -> tuple[int, int]:
    """Extract (prompt, completion) token counts from a LangChain message."""

    usage = getattr(response, "usage_metadata", None)
    if isinstance(usage, Mapping):
        return int(usage.get("input_tokens", 0) or 0), int(usage.get("output_tokens", 0) or 0)
    metadata = getattr(response, "response_metadata", None)
    if isinstance(metadata, Mapping):
        token_usage = metadata.get("token_usage") or {}
        return int(token_usage.get("prompt_tokens", 0) or 0), int(token_usage.get("completion_tokens", 0) or 0)
    return 0, 0
