# Copyright (c) 2025 Tolboom Medical
# Licensed under Prosperity Public License 3.0.0
# Commercial use requires separate license - see LICENSE and COMMERCIAL_LICENSE.md

"""
Quality-control engine for targeted lesson refinement.

Subpackages:
    - quality: Rubric scoring, quality locks, quality bands, readability
    - arbiter: Inter-judge agreement, conflict resolution, refinement plans
    - iterative: Iteration controller, best-effort selection, loop runner
    - llm: Token cost estimation

Usage:
    >>> from refinement_engine import RefinementLoopConfig, RefinementLoopRunner
"""

from .config import OperationMode, RefinementSettings, refinement_settings
from .errors import (
    CollaboratorError,
    CostOverflowError,
    EmptyHistoryError,
    EmptyInputError,
    InvalidTokenCountError,
    RefinementError,
    UnknownModelError,
)
from .iterative import RefinementLoopConfig, RefinementLoopResult, RefinementLoopRunner
from .models import (
    Criterion,
    IterationResult,
    JudgeIssue,
    JudgeVerdict,
    PatchResult,
    RefinementState,
    Severity,
)

__version__ = "1.0.0"

__all__ = [
    # Configuration
    "OperationMode",
    "RefinementSettings",
    "refinement_settings",
    # Errors
    "RefinementError",
    "EmptyInputError",
    "EmptyHistoryError",
    "CollaboratorError",
    "UnknownModelError",
    "InvalidTokenCountError",
    "CostOverflowError",
    # Models
    "Criterion",
    "Severity",
    "JudgeIssue",
    "JudgeVerdict",
    "PatchResult",
    "IterationResult",
    "RefinementState",
    # Loop runner
    "RefinementLoopConfig",
    "RefinementLoopResult",
    "RefinementLoopRunner",
]
