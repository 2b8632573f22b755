"""
Quality assessment module for the targeted-refinement loop.

This module provides rubric score rollups, quality locks against regression,
mode-dependent quality bands, and readability checks for patched content.

Public API:
    - CriterionWeights: Dataclass for rubric weights
    - QualityLockViolation / QualityLockCheckResult: Lock check results
    - ReadabilityMetrics / ReadabilityCheck: Readability results
    - QualityStatus / RefinementStatus: Enums for quality band and disposition
    - weighted_score(): Weighted rubric score from criterion scores
    - verdict_score() / average_verdict_score(): Scalar score of verdicts
    - average_criteria_scores(): Per-criterion mean across judges
    - initialize_quality_locks(): Capture criteria at or above threshold
    - check_quality_locks(): Detect regressions beyond tolerance
    - determine_quality_status(): Classify a score for a mode
    - final_status_for(): Map quality band to final disposition
    - calculate_universal_readability() / validate_readability()
"""

from .locks import (
    QualityLockCheckResult,
    QualityLockViolation,
    check_quality_locks,
    initialize_quality_locks,
)
from .readability import (
    ReadabilityCheck,
    ReadabilityMetrics,
    calculate_universal_readability,
    validate_readability,
)
from .scoring import (
    DEFAULT_WEIGHTS,
    CriterionWeights,
    average_criteria_scores,
    average_verdict_score,
    verdict_score,
    weighted_score,
)
from .thresholds import (
    QualityStatus,
    RefinementStatus,
    determine_quality_status,
    final_status_for,
)

__all__ = [
    # Dataclasses
    "CriterionWeights",
    "QualityLockCheckResult",
    "QualityLockViolation",
    "ReadabilityCheck",
    "ReadabilityMetrics",
    # Enums
    "QualityStatus",
    "RefinementStatus",
    # Functions
    "weighted_score",
    "verdict_score",
    "average_verdict_score",
    "average_criteria_scores",
    "initialize_quality_locks",
    "check_quality_locks",
    "determine_quality_status",
    "final_status_for",
    "calculate_universal_readability",
    "validate_readability",
    # Constants
    "DEFAULT_WEIGHTS",
]
