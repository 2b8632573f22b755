# Copyright (c) 2025 Tolboom Medical
# Licensed under Prosperity Public License 3.0.0
# Commercial use requires separate license - see LICENSE and COMMERCIAL_LICENSE.md

"""
Language-model accounting for the refinement loop.

Model invocation itself is owned by the orchestration layer; this package
only prices the calls it reports.

Public API:
    - estimate_cost(): USD cost of a call
    - calculate_cost_breakdown(): Per-side cost with timestamp
    - get_supported_models() / is_model_supported()
    - CostLedger: Per-session running ledger
"""

from .cost_calculator import (
    COST_OVERFLOW_THRESHOLD,
    MODEL_PRICING,
    CostBreakdown,
    CostLedger,
    CostRecord,
    ModelPricing,
    calculate_cost_breakdown,
    estimate_cost,
    get_supported_models,
    is_model_supported,
)

__all__ = [
    # Dataclasses
    "CostBreakdown",
    "CostLedger",
    "CostRecord",
    "ModelPricing",
    # Functions
    "estimate_cost",
    "calculate_cost_breakdown",
    "get_supported_models",
    "is_model_supported",
    # Constants
    "COST_OVERFLOW_THRESHOLD",
    "MODEL_PRICING",
]
