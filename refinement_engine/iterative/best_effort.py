"""
Best-effort selection when refinement stops without reaching the accept threshold.

Picks the highest-scoring iteration from history (first occurrence on ties),
classifies it for the operating mode, and attaches improvement hints built
from the issues that remained unresolved.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..config import OperationMode, RefinementSettings, refinement_settings
from ..errors import EmptyHistoryError
from ..models import IterationResult, JudgeIssue
from ..quality.thresholds import (
    QualityStatus,
    RefinementStatus,
    determine_quality_status,
    final_status_for,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BestEffortResult:
    """
    Content returned to the caller after best-effort selection.

    Attributes:
        content: Content snapshot of the selected iteration
        best_score: Score of the selected iteration
        quality_status: Quality band for the operating mode
        unresolved_issues: Issues still open
        improvement_hints: Most severe open issues, rendered for humans
    """

    content: str
    best_score: float
    quality_status: QualityStatus
    unresolved_issues: list[JudgeIssue] = field(default_factory=list)
    improvement_hints: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BestEffortSelection:
    """Selected iteration and final disposition."""

    best_result: BestEffortResult
    selected_iteration: int
    selection_reason: str
    final_status: RefinementStatus

    def to_dict(self) -> dict:
        return {
            "content": self.best_result.content,
            "best_score": self.best_result.best_score,
            "quality_status": self.best_result.quality_status.value,
            "improvement_hints": list(self.best_result.improvement_hints),
            "selected_iteration": self.selected_iteration,
            "selection_reason": self.selection_reason,
            "final_status": self.final_status.value,
        }


def generate_improvement_hints(issues: Sequence[JudgeIssue], max_hints: int = 5) -> list[str]:
    """
    Render the most severe issues as improvement hints.

    Issues are ordered critical > major > minor (stable within a severity)
    and rendered as "Improve <criterion>: <suggested fix or description>".

    Example:
        >>> generate_improvement_hints([issue])
        ['Improve factual accuracy: Correct the date of the treaty']
    """
    ordered = sorted(issues, key=lambda issue: -issue.severity.rank)
    return [
        f"Improve {issue.criterion.label}: {issue.suggested_fix or issue.description}"
        for issue in ordered[:max_hints]
    ]


def _mode_note(status: QualityStatus, mode: OperationMode) -> str:
    if status is QualityStatus.GOOD:
        return "Quality meets target."
    if mode is OperationMode.FULL_AUTO:
        if status is QualityStatus.ACCEPTABLE:
            return "Quality acceptable with minor issues."
        return "Quality below standard, returning best available result."
    if status is QualityStatus.ACCEPTABLE:
        return "Quality acceptable, review optional."
    return "Manual review recommended due to below-standard quality."


def build_selection_reason(
    selected: IterationResult,
    status: QualityStatus,
    attempts: int,
    mode: OperationMode,
) -> str:
    """Human-readable explanation of the selection."""
    if selected.iteration == 0:
        what = "Selected initial content"
    else:
        what = f"Selected iteration {selected.iteration}"

    reason = f"{what} with score {selected.score:.1%} ({status.label} quality)"
    if attempts > 1:
        reason += f" after {attempts} refinement attempts"
    return f"{reason}. {_mode_note(status, mode)}"


def select_best_iteration(
    iteration_history: Sequence[IterationResult],
    unresolved_issues: Sequence[JudgeIssue],
    mode: OperationMode | str,
    settings: RefinementSettings | None = None,
) -> BestEffortSelection:
    """
    Select the best iteration from history.

    Args:
        iteration_history: Iteration results in order (iteration 0 first)
        unresolved_issues: Issues still open at the end of refinement
        mode: Operating mode
        settings: Optional settings override

    Returns:
        BestEffortSelection

    Raises:
        EmptyHistoryError: If the history is empty

    Example:
        >>> selection = select_best_iteration(history, [], "full-auto")
        >>> selection.final_status
        <RefinementStatus.ACCEPTED_WARNING: 'accepted_warning'>
    """
    if not iteration_history:
        raise EmptyHistoryError("No valid iterations in history")

    settings = settings or refinement_settings
    mode = OperationMode(mode)

    # max() keeps the first occurrence on ties
    best = max(iteration_history, key=lambda result: result.score)

    status = determine_quality_status(best.score, mode, settings)
    final_status = final_status_for(status, mode, settings)
    reason = build_selection_reason(best, status, len(iteration_history), mode)

    logger.info(
        f"Best-effort selection: iteration {best.iteration} "
        f"({best.score:.1%}, {status.value}) -> {final_status.value}"
    )

    return BestEffortSelection(
        best_result=BestEffortResult(
            content=best.content,
            best_score=best.score,
            quality_status=status,
            unresolved_issues=list(unresolved_issues),
            improvement_hints=generate_improvement_hints(unresolved_issues, settings.max_hints),
        ),
        selected_iteration=best.iteration,
        selection_reason=reason,
        final_status=final_status,
    )
