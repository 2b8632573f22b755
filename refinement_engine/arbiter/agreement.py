"""
Inter-judge agreement scoring.

Agreement is Krippendorff's alpha with the interval difference metric. The
verdicts form a reliability matrix with criteria as units and judges as
coders; a criterion scored by fewer than two judges is not pairable and is
left out.

    alpha = 1 - D_o / D_e

    D_o = sum over units u of  sum_{i != j in u} (v_i - v_j)^2 / (m_u - 1)
    D_e = sum over all ordered pairs i != j of (v_i - v_j)^2 / (n - 1)

where m_u is the number of scores for unit u and n the number of pairable
scores. The exposed score is clipped to [0, 1]; when every pairable score is
identical there is no disagreement to measure and the score is 1.0.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from ..config import RefinementSettings, refinement_settings
from ..errors import EmptyInputError
from ..models import CriteriaScores, JudgeVerdict

logger = logging.getLogger(__name__)


class AgreementLevel(str, Enum):
    """Discrete agreement level derived from the agreement score."""

    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


@dataclass(frozen=True)
class AgreementResult:
    """Agreement score in [0, 1] and its level."""

    score: float
    level: AgreementLevel


def agreement_level(score: float, settings: RefinementSettings | None = None) -> AgreementLevel:
    """
    Map an agreement score to its level.

    Example:
        >>> agreement_level(0.80)
        <AgreementLevel.HIGH: 'high'>
        >>> agreement_level(0.70)
        <AgreementLevel.MODERATE: 'moderate'>
    """
    settings = settings or refinement_settings
    if score >= settings.high_agreement:
        return AgreementLevel.HIGH
    if score >= settings.moderate_agreement:
        return AgreementLevel.MODERATE
    return AgreementLevel.LOW


def _scores_of(verdict: JudgeVerdict | Mapping[str, float]) -> CriteriaScores:
    if isinstance(verdict, JudgeVerdict):
        return verdict.criteria_scores
    return dict(verdict)


def krippendorff_alpha_interval(matrix: Sequence[CriteriaScores]) -> float:
    """
    Krippendorff's alpha (interval metric) over judge score vectors.

    Args:
        matrix: One criterion -> score mapping per judge

    Returns:
        float: Alpha clipped to [0, 1]
    """
    criteria: list[str] = []
    for row in matrix:
        criteria.extend(c for c in row if c not in criteria)

    units = [[row[c] for row in matrix if c in row] for c in criteria]
    units = [unit for unit in units if len(unit) >= 2]
    values = [value for unit in units for value in unit]
    n = len(values)
    if n < 2:
        return 1.0

    observed = 0.0
    for unit in units:
        pair_sum = sum((a - b) ** 2 for i, a in enumerate(unit) for j, b in enumerate(unit) if i != j)
        observed += pair_sum / (len(unit) - 1)

    # Sum over all ordered pairs equals 2n * sum of squared deviations
    mean = sum(values) / n
    expected = 2 * n * sum((v - mean) ** 2 for v in values) / (n - 1)

    if observed == 0 or expected == 0:
        return 1.0

    alpha = 1 - observed / expected
    return max(0.0, min(1.0, alpha))


def calculate_agreement_score(
    verdicts: Sequence[JudgeVerdict | Mapping[str, float]],
    settings: RefinementSettings | None = None,
) -> AgreementResult:
    """
    Measure how consistently independent judges scored the same content.

    Args:
        verdicts: Complete verdict set from every judge in the batch
        settings: Optional settings override for the level cut points

    Returns:
        AgreementResult; a single verdict is perfect agreement by definition

    Raises:
        EmptyInputError: If no verdicts are given
    """
    if not verdicts:
        raise EmptyInputError("Cannot calculate agreement score from empty verdicts array")

    if len(verdicts) == 1:
        return AgreementResult(score=1.0, level=AgreementLevel.HIGH)

    score = krippendorff_alpha_interval([_scores_of(v) for v in verdicts])
    level = agreement_level(score, settings)
    logger.debug(f"Agreement across {len(verdicts)} judges: alpha={score:.3f} ({level.value})")
    return AgreementResult(score=score, level=level)
