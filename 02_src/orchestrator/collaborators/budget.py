"""Usage cost accounting with a hard ceiling."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..errors import BudgetExceeded
from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ModelPricing:
    """Per-model input/output pricing in USD per 1M tokens."""

    input_per_1m: float
    output_per_1m: float


DEFAULT_PRICING: dict[str, ModelPricing] = {
    "opus": ModelPricing(input_per_1m=15.0, output_per_1m=75.0),
    "sonnet": ModelPricing(input_per_1m=3.0, output_per_1m=15.0),
    "haiku": ModelPricing(input_per_1m=0.8, output_per_1m=4.0),
}
FALLBACK_FAMILY = "sonnet"


@dataclass
class UsageRecord:
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BudgetTracker:
    """Accumulates token cost and enforces `max_cost` (USD)."""

    def __init__(
        self, max_cost: float, pricing: dict[str, ModelPricing] | None = None
    ):
        self._max_cost = max_cost
        self._pricing = pricing or DEFAULT_PRICING
        self._total_cost = 0.0
        self._usage: list[UsageRecord] = []

    @property
    def max_cost(self) -> float:
        return self._max_cost

    def estimate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        pricing = self._lookup_pricing(model)
        return (input_tokens / 1_000_000) * pricing.input_per_1m + (
            output_tokens / 1_000_000
        ) * pricing.output_per_1m

    def add_usage(self, metrics: dict) -> float:
        """Record one call's usage; returns its cost.

        The usage is kept even when it pushes the total past the ceiling,
        in which case BudgetExceeded is raised afterwards.
        """
        model = metrics.get("model") or FALLBACK_FAMILY
        input_tokens = int(metrics.get("input_tokens") or 0)
        output_tokens = int(metrics.get("output_tokens") or 0)
        cost = self.estimate_cost(model, input_tokens, output_tokens)

        self._usage.append(UsageRecord(model, input_tokens, output_tokens, cost))
        self._total_cost += cost
        logger.debug("Usage %s: $%.4f (total $%.4f)", model, cost, self._total_cost)

        if self._total_cost > self._max_cost:
            raise BudgetExceeded(self._total_cost, self._max_cost)
        return cost

    def get_total_cost(self) -> float:
        return self._total_cost

    def get_remaining_budget(self) -> float:
        return max(0.0, self._max_cost - self._total_cost)

    def get_usage_breakdown(self) -> dict:
        return {
            "total": self._total_cost,
            "calls": len(self._usage),
            "details": [
                {
                    "model": u.model,
                    "input_tokens": u.input_tokens,
                    "output_tokens": u.output_tokens,
                    "cost": u.cost,
                    "recorded_at": u.recorded_at.isoformat(),
                }
                for u in self._usage
            ],
        }

    def _lookup_pricing(self, model: str) -> ModelPricing:
        if model in self._pricing:
            return self._pricing[model]
        lowered = model.lower()
        for family, pricing in self._pricing.items():
            if family in lowered:
                return pricing
        return self._pricing.get(FALLBACK_FAMILY) or DEFAULT_PRICING[FALLBACK_FAMILY]
