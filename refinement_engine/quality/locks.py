"""
Quality locks: regression detection for criteria that already passed.

When a refinement session starts, every criterion scoring at or above the lock
threshold is captured in a QualityLockMap. After each patch the new criterion
scores are compared to the locks; a drop strictly larger than the tolerance is
a violation. Both functions are pure and never mutate their inputs.
"""

import logging
from dataclasses import dataclass, field

from ..models import CriteriaScores, QualityLockMap

logger = logging.getLogger(__name__)

DEFAULT_LOCK_THRESHOLD = 0.75
DEFAULT_REGRESSION_TOLERANCE = 0.05

# Deltas are compared after rounding so that 0.85 -> 0.80 counts as exactly -0.05
_DELTA_PRECISION = 10


@dataclass(frozen=True)
class QualityLockViolation:
    """
    A locked criterion that regressed beyond tolerance.

    Attributes:
        criterion: Criterion name
        locked_score: Score captured in the lock map
        new_score: Score after the patch
        delta: new_score - locked_score (negative)
        section_id: Section whose patch caused the regression
    """

    criterion: str
    locked_score: float
    new_score: float
    delta: float
    section_id: str

    def to_dict(self) -> dict:
        return {
            "criterion": self.criterion,
            "locked_score": self.locked_score,
            "new_score": self.new_score,
            "delta": self.delta,
            "section_id": self.section_id,
        }


@dataclass(frozen=True)
class QualityLockCheckResult:
    """Outcome of a quality lock check."""

    passed: bool
    violations: list[QualityLockViolation] = field(default_factory=list)
    current_locks: QualityLockMap = field(default_factory=dict)


def initialize_quality_locks(
    scores: CriteriaScores, threshold: float = DEFAULT_LOCK_THRESHOLD
) -> QualityLockMap:
    """
    Capture every criterion scoring at or above the threshold.

    Criteria below the threshold are omitted, not locked at a lower bound.

    Args:
        scores: Criterion scores of the initial content
        threshold: Minimum score to lock (inclusive)

    Returns:
        New lock map

    Example:
        >>> initialize_quality_locks({"clarity_readability": 0.75, "completeness": 0.6})
        {'clarity_readability': 0.75}
    """
    return {criterion: score for criterion, score in scores.items() if score >= threshold}


def check_quality_locks(
    locks: QualityLockMap,
    new_scores: CriteriaScores,
    section_id: str,
    tolerance: float = DEFAULT_REGRESSION_TOLERANCE,
) -> QualityLockCheckResult:
    """
    Check post-patch scores against the quality locks.

    A violation occurs iff ``new_score - locked_score < -tolerance``; a loss of
    exactly ``tolerance`` is allowed. Criteria absent from ``locks`` are
    ignored, as are locked criteria the new verdict did not score.

    Args:
        locks: Criterion scores captured at session start
        new_scores: Criterion scores after the patch
        section_id: Section the patch was applied to
        tolerance: Allowed drop on the 0-1 scale

    Returns:
        QualityLockCheckResult; current_locks is a copy of ``locks``
    """
    violations = []
    for criterion, locked_score in locks.items():
        if criterion not in new_scores:
            continue
        new_score = new_scores[criterion]
        delta = round(new_score - locked_score, _DELTA_PRECISION)
        if delta < -tolerance:
            violations.append(
                QualityLockViolation(
                    criterion=criterion,
                    locked_score=locked_score,
                    new_score=new_score,
                    delta=delta,
                    section_id=section_id,
                )
            )

    if violations:
        summary = ", ".join(f"{v.criterion} {v.delta:+.3f}" for v in violations)
        logger.warning(f"Quality lock violated in {section_id}: {summary}")

    return QualityLockCheckResult(
        passed=not violations,
        violations=violations,
        current_locks=dict(locks),
    )
