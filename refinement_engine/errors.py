# Copyright (c) 2025 Tolboom Medical
# Licensed under Prosperity Public License 3.0.0
# Commercial use requires separate license - see LICENSE and COMMERCIAL_LICENSE.md

"""
Exceptions raised by the refinement engine.

Input-validation and out-of-bounds errors fail fast and carry the offending
value. Decision functions (quality locks, conflict resolution, iteration
control) never raise on degenerate input; they return structured results.
"""


class RefinementError(Exception):
    """Base exception for refinement engine errors"""

    pass


class EmptyInputError(RefinementError):
    """Raised when an operation receives an empty verdict collection"""

    pass


class EmptyHistoryError(RefinementError):
    """Raised when best-effort selection receives an empty iteration history"""

    pass


class CollaboratorError(RefinementError):
    """
    Transient failure of an external collaborator (patch executor or judge).

    The loop runner retries these. Validation and overflow errors are never
    retried because they indicate a configuration or accounting bug.
    """

    pass


class CostCalculationError(RefinementError):
    """Base exception for cost calculation failures"""

    pass


class UnknownModelError(CostCalculationError):
    """Model identifier is not present in the pricing table"""

    def __init__(self, model: str, available_models: list[str]):
        self.model = model
        self.available_models = list(available_models)
        super().__init__(
            f"Unknown model: {model}. Available models: {', '.join(self.available_models)}"
        )


class InvalidTokenCountError(CostCalculationError):
    """Token count is negative, NaN, or infinite"""

    def __init__(self, tokens: float, token_type: str):
        self.tokens = tokens
        self.type = token_type
        super().__init__(f"Invalid {token_type} token count: {tokens}")


class CostOverflowError(CostCalculationError):
    """Computed cost strictly exceeds the configured ceiling"""

    def __init__(self, cost: float, threshold: float):
        self.cost = cost
        self.threshold = threshold
        super().__init__(
            f"Cost calculation overflow: ${cost:.2f} exceeds threshold ${threshold:g}"
        )
