# Copyright (c) 2025 Tolboom Medical
# Licensed under Prosperity Public License 3.0.0
# Commercial use requires separate license - see LICENSE and COMMERCIAL_LICENSE.md

"""
Token cost estimation for language-model calls.

Prices are per 1M tokens (USD), separately for input and output. Estimates
guard the refinement loop's cost ceiling, so invalid input and out-of-range
results fail fast instead of being clamped.

Usage:
    >>> estimate_cost("openai/gpt-oss-20b", 50_000, 5_000)
    0.0022
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..config import RefinementSettings, refinement_settings
from ..errors import CostOverflowError, InvalidTokenCountError, UnknownModelError

logger = logging.getLogger(__name__)

# Default ceiling; a single estimate above it is treated as an accounting bug
COST_OVERFLOW_THRESHOLD = refinement_settings.cost_ceiling

_TOKENS_PER_UNIT = 1_000_000


@dataclass(frozen=True)
class ModelPricing:
    """USD price per 1M input and output tokens."""

    input_per_1m: float
    output_per_1m: float


MODEL_PRICING: dict[str, ModelPricing] = {
    "openai/gpt-oss-20b": ModelPricing(0.03, 0.14),
    "openai/gpt-oss-120b": ModelPricing(0.04, 0.40),
    "google/gemini-2.5-flash-preview": ModelPricing(0.10, 0.40),
    "anthropic/claude-3.5-sonnet": ModelPricing(3.00, 15.00),
    "openai/gpt-4-turbo": ModelPricing(10.00, 30.00),
}


@dataclass(frozen=True)
class CostBreakdown:
    """
    Detailed cost of one model call.

    Attributes:
        model: Model identifier
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        total_tokens: input_tokens + output_tokens
        input_cost: USD for input tokens
        output_cost: USD for output tokens
        total_cost: USD total, identical to estimate_cost() for the same call
        calculated_at: ISO-8601 UTC timestamp
    """

    model: str
    input_tokens: float
    output_tokens: float
    total_tokens: float
    input_cost: float
    output_cost: float
    total_cost: float
    calculated_at: str

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "total_cost": self.total_cost,
            "calculated_at": self.calculated_at,
        }


def _validate_tokens(tokens: float, token_type: str) -> None:
    if not isinstance(tokens, int | float) or not math.isfinite(tokens) or tokens < 0:
        raise InvalidTokenCountError(tokens, token_type)


def _side_costs(
    model: str,
    input_tokens: float,
    output_tokens: float,
    settings: RefinementSettings | None,
) -> tuple[float, float]:
    """Validate inputs and return (input_cost, output_cost)."""
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        raise UnknownModelError(model, get_supported_models())
    _validate_tokens(input_tokens, "input")
    _validate_tokens(output_tokens, "output")

    input_cost = input_tokens / _TOKENS_PER_UNIT * pricing.input_per_1m
    output_cost = output_tokens / _TOKENS_PER_UNIT * pricing.output_per_1m
    total = input_cost + output_cost
    ceiling = (settings or refinement_settings).cost_ceiling
    if total > ceiling:
        logger.error(f"Cost estimate ${total:.2f} for {model} exceeds ceiling ${ceiling:.2f}")
        raise CostOverflowError(total, ceiling)
    return input_cost, output_cost


def estimate_cost(
    model: str,
    input_tokens: float,
    output_tokens: float,
    settings: RefinementSettings | None = None,
) -> float:
    """
    Estimate USD cost of a model call.

    Args:
        model: Model identifier, e.g. "openai/gpt-oss-20b"
        input_tokens: Prompt tokens (finite, non-negative)
        output_tokens: Completion tokens (finite, non-negative)
        settings: Optional settings override for the cost ceiling

    Returns:
        float: Cost in USD

    Raises:
        UnknownModelError: Model is not in MODEL_PRICING
        InvalidTokenCountError: A token count is negative, NaN or infinite
        CostOverflowError: Cost strictly exceeds the settings' cost_ceiling
    """
    input_cost, output_cost = _side_costs(model, input_tokens, output_tokens, settings)
    return input_cost + output_cost


def calculate_cost_breakdown(
    model: str,
    input_tokens: float,
    output_tokens: float,
    settings: RefinementSettings | None = None,
) -> CostBreakdown:
    """
    Calculate per-side costs of a model call.

    Raises the same errors as estimate_cost(); ``total_cost`` always equals
    ``estimate_cost(model, input_tokens, output_tokens, settings)``.
    """
    input_cost, output_cost = _side_costs(model, input_tokens, output_tokens, settings)
    return CostBreakdown(
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost,
        calculated_at=datetime.now(timezone.utc).isoformat(),
    )


def get_supported_models() -> list[str]:
    """Model identifiers with known pricing."""
    return list(MODEL_PRICING)


def is_model_supported(model: str) -> bool:
    return model in MODEL_PRICING


@dataclass(frozen=True)
class CostRecord:
    """One priced call in a CostLedger."""

    step_name: str
    iteration: int
    breakdown: CostBreakdown


@dataclass
class CostLedger:
    """
    Running ledger of priced model calls for one refinement session.

    Provides aggregate cost and per-iteration breakdowns.
    """

    session_id: str
    records: list[CostRecord] = field(default_factory=list)
    settings: RefinementSettings | None = None

    def record(
        self,
        step_name: str,
        model: str,
        input_tokens: float,
        output_tokens: float,
        iteration: int = 0,
    ) -> CostRecord:
        """Price a call and append it to the ledger."""
        entry = CostRecord(
            step_name=step_name,
            iteration=iteration,
            breakdown=calculate_cost_breakdown(
                model, input_tokens, output_tokens, self.settings
            ),
        )
        self.records.append(entry)
        return entry

    @property
    def total_tokens(self) -> float:
        return sum(r.breakdown.total_tokens for r in self.records)

    @property
    def total_cost(self) -> float:
        return sum(r.breakdown.total_cost for r in self.records)

    @property
    def call_count(self) -> int:
        return len(self.records)

    def cost_per_iteration(self) -> dict[int, float]:
        """Map of iteration -> incremental cost."""
        costs: dict[int, float] = {}
        for r in self.records:
            costs[r.iteration] = costs.get(r.iteration, 0.0) + r.breakdown.total_cost
        return dict(sorted(costs.items()))

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "session_id": self.session_id,
            "total_tokens": self.total_tokens,
            "total_cost": round(self.total_cost, 6),
            "call_count": self.call_count,
            "cost_per_iteration": {
                str(k): round(v, 6) for k, v in self.cost_per_iteration().items()
            },
        }
