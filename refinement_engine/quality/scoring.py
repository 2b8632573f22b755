"""
Rubric weighting and scalar score rollups.

Judges score each criterion independently; the refinement loop operates on a
single scalar per cycle. This module turns criterion scores into that scalar
and averages verdicts from several judges.
"""

from dataclasses import dataclass

from ..models import CriteriaScores, Criterion, JudgeVerdict


@dataclass(frozen=True)
class CriterionWeights:
    """
    Contribution of each criterion to the overall lesson score.

    Weights should sum to 1.0 for consistent scoring.
    """

    learning_objective_alignment: float = 0.25
    pedagogical_structure: float = 0.20
    factual_accuracy: float = 0.15
    clarity_readability: float = 0.15
    engagement_examples: float = 0.15
    completeness: float = 0.10

    def for_criterion(self, criterion: Criterion | str) -> float:
        return getattr(self, Criterion(criterion).value)


DEFAULT_WEIGHTS = CriterionWeights()


def weighted_score(scores: CriteriaScores, weights: CriterionWeights | None = None) -> float:
    """
    Calculate the weighted rubric score from criterion scores.

    Criteria missing from ``scores`` are left out and the remaining weights
    are renormalized, so a partial verdict is not penalized as zero.

    Args:
        scores: Criterion name -> score in [0, 1]
        weights: Optional custom weights (uses DEFAULT_WEIGHTS if None)

    Returns:
        float: Weighted composite score (0.0-1.0), 0.0 for empty input

    Example:
        >>> weighted_score({"factual_accuracy": 0.9, "completeness": 0.6})
        0.78
    """
    if weights is None:
        weights = DEFAULT_WEIGHTS

    total_weight = 0.0
    total = 0.0
    for name, value in scores.items():
        weight = weights.for_criterion(name)
        total += value * weight
        total_weight += weight

    if total_weight == 0:
        return 0.0
    return round(total / total_weight, 4)


def verdict_score(verdict: JudgeVerdict, weights: CriterionWeights | None = None) -> float:
    """Overall score reported by the judge, or the weighted rubric score if absent."""
    if verdict.overall_score is not None:
        return verdict.overall_score
    return weighted_score(verdict.criteria_scores, weights)


def average_verdict_score(verdicts: list[JudgeVerdict]) -> float:
    """Mean overall score across judges (0.0 when there are no verdicts)."""
    if not verdicts:
        return 0.0
    return sum(verdict_score(v) for v in verdicts) / len(verdicts)


def average_criteria_scores(verdicts: list[JudgeVerdict]) -> CriteriaScores:
    """
    Average each criterion across the judges that scored it.

    Returns:
        Criterion name -> mean score, in rubric order
    """
    averaged: CriteriaScores = {}
    for criterion in Criterion:
        values = [
            v.criteria_scores[criterion.value]
            for v in verdicts
            if criterion.value in v.criteria_scores
        ]
        if values:
            averaged[criterion.value] = sum(values) / len(values)
    return averaged
