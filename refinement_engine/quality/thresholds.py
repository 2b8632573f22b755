"""
Mode-dependent quality bands and final dispositions.

Quality status is derived from a scalar score and the operating mode's
accept / good-enough thresholds (all lower bounds inclusive):

    full-auto:  good >= 0.85, acceptable >= 0.75, otherwise below_standard
    semi-auto:  good >= 0.90, acceptable >= 0.85, otherwise below_standard
"""

from enum import Enum

from ..config import OperationMode, RefinementSettings, refinement_settings


class QualityStatus(str, Enum):
    """Quality band of a refinement result."""

    GOOD = "good"
    ACCEPTABLE = "acceptable"
    BELOW_STANDARD = "below_standard"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class RefinementStatus(str, Enum):
    """Final disposition of a refinement session."""

    ACCEPTED = "accepted"
    ACCEPTED_WARNING = "accepted_warning"
    BEST_EFFORT = "best_effort"
    ESCALATED = "escalated"


def determine_quality_status(
    score: float,
    mode: OperationMode | str,
    settings: RefinementSettings | None = None,
) -> QualityStatus:
    """
    Classify a score into a quality band for the given mode.

    Args:
        score: Scalar score in [0, 1]
        mode: Operating mode
        settings: Optional settings override

    Returns:
        QualityStatus for the score

    Example:
        >>> determine_quality_status(0.80, "full-auto")
        <QualityStatus.ACCEPTABLE: 'acceptable'>
        >>> determine_quality_status(0.80, "semi-auto")
        <QualityStatus.BELOW_STANDARD: 'below_standard'>
    """
    thresholds = (settings or refinement_settings).mode(mode)
    if score >= thresholds.accept_threshold:
        return QualityStatus.GOOD
    if score >= thresholds.good_enough_threshold:
        return QualityStatus.ACCEPTABLE
    return QualityStatus.BELOW_STANDARD


def final_status_for(
    quality_status: QualityStatus,
    mode: OperationMode | str,
    settings: RefinementSettings | None = None,
) -> RefinementStatus:
    """
    Map a quality band to the session's final disposition.

    Below-standard results follow the mode's on_max_iterations policy.
    """
    if quality_status is QualityStatus.GOOD:
        return RefinementStatus.ACCEPTED
    if quality_status is QualityStatus.ACCEPTABLE:
        return RefinementStatus.ACCEPTED_WARNING
    if (settings or refinement_settings).mode(mode).on_max_iterations == "escalate":
        return RefinementStatus.ESCALATED
    return RefinementStatus.BEST_EFFORT
