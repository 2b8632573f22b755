"""
Stop/continue decisions for the targeted-refinement loop.

should_continue_iteration() is a pure function re-invoked once per cycle with
an immutable RefinementState snapshot. Stop conditions are checked in a fixed
order and the first match wins:

    1. score threshold met     -> stop_score_threshold_met
    2. max iterations reached  -> stop_max_iterations
    3. token budget exhausted  -> stop_token_budget
    4. timeout elapsed         -> stop_timeout
    5. score plateau           -> stop_converged
    6. every section locked    -> stop_all_sections_locked
    7. otherwise               -> continue_more_tasks

The timeout is a declarative check against elapsed time; it only fires when
the controller is invoked.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..config import OperationMode, RefinementSettings, refinement_settings
from ..models import RefinementState

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    """Reason reported with every iteration decision."""

    SCORE_THRESHOLD_MET = "stop_score_threshold_met"
    MAX_ITERATIONS = "stop_max_iterations"
    TOKEN_BUDGET = "stop_token_budget"
    TIMEOUT = "stop_timeout"
    CONVERGED = "stop_converged"
    ALL_SECTIONS_LOCKED = "stop_all_sections_locked"
    CONTINUE = "continue_more_tasks"


@dataclass(frozen=True)
class IterationDecision:
    """
    Decision for the next refinement cycle.

    Attributes:
        should_continue: Whether another cycle should run
        reason: Stop condition that fired, or CONTINUE
        newly_locked_sections: Every section at its edit limit
        remaining_task_count: Unlocked sections left (0 on any stop)
        escalation_recommended: Advisory flag for a human review
    """

    should_continue: bool
    reason: StopReason
    newly_locked_sections: list[str] = field(default_factory=list)
    remaining_task_count: int = 0
    escalation_recommended: bool = False

    def to_dict(self) -> dict:
        return {
            "should_continue": self.should_continue,
            "reason": self.reason.value,
            "newly_locked_sections": list(self.newly_locked_sections),
            "remaining_task_count": self.remaining_task_count,
            "escalation_recommended": self.escalation_recommended,
        }


@dataclass(frozen=True)
class OscillationResult:
    """Score oscillation over the last three cycles."""

    detected: bool
    previous_score: float | None = None
    improved_score: float | None = None


def detect_convergence(score_history: Sequence[float], threshold: float = 0.02) -> bool:
    """
    Detect a plateau in the score history.

    Requires at least three scores; true iff both step deltas between the
    last three scores are below the threshold.

    Example:
        >>> detect_convergence([0.70, 0.78, 0.79, 0.79])
        True
        >>> detect_convergence([0.60, 0.70, 0.80])
        False
    """
    if len(score_history) < 3:
        return False
    a, b, c = score_history[-3:]
    return abs(b - a) < threshold and abs(c - b) < threshold


def detect_score_oscillation(
    score_history: Sequence[float], tolerance: float = 0.01
) -> OscillationResult:
    """
    Detect an improvement that was immediately undone.

    Over the last three scores, an oscillation is a rise of more than the
    tolerance followed by a drop of more than the tolerance.
    """
    if len(score_history) < 3:
        return OscillationResult(detected=False)
    before, improved, after = score_history[-3:]
    if improved > before + tolerance and after < improved - tolerance:
        return OscillationResult(detected=True, previous_score=before, improved_score=improved)
    return OscillationResult(detected=False)


def update_section_locks(edit_counts: Mapping[str, int], max_edits: int = 2) -> list[str]:
    """
    Sections whose edit count reached the limit.

    Example:
        >>> update_section_locks({"a": 2, "b": 1}, 2)
        ['a']
    """
    return [section_id for section_id, count in edit_counts.items() if count >= max_edits]


def stop_decision(
    reason: StopReason,
    newly_locked: list[str],
    latest_score: float,
    mode: OperationMode | str,
    settings: RefinementSettings | None = None,
) -> IterationDecision:
    """Build a stop decision, advising escalation where the mode allows it."""
    settings = settings or refinement_settings
    thresholds = settings.mode(mode)
    escalate = (
        reason is not StopReason.SCORE_THRESHOLD_MET
        and thresholds.escalation_enabled
        and latest_score < thresholds.good_enough_threshold
    )
    logger.info(f"Refinement stopping: {reason.value} (score {latest_score:.2f})")
    if escalate:
        logger.warning(f"Escalation recommended: score {latest_score:.2f} below good-enough")
    return IterationDecision(
        should_continue=False,
        reason=reason,
        newly_locked_sections=newly_locked,
        remaining_task_count=0,
        escalation_recommended=escalate,
    )


def should_continue_iteration(
    state: RefinementState,
    latest_score: float,
    mode: OperationMode | str,
    settings: RefinementSettings | None = None,
    now_ms: float | None = None,
) -> IterationDecision:
    """
    Decide whether the refinement loop should run another cycle.

    Args:
        state: Current loop state snapshot (not modified)
        latest_score: Score after the most recent cycle
        mode: Operating mode
        settings: Optional settings override
        now_ms: Current time in epoch milliseconds (defaults to wall clock)

    Returns:
        IterationDecision
    """
    settings = settings or refinement_settings
    mode = OperationMode(mode)
    thresholds = settings.mode(mode)

    newly_locked = update_section_locks(state.section_edit_count, settings.section_lock_after_edits)

    if latest_score >= thresholds.accept_threshold:
        reason = StopReason.SCORE_THRESHOLD_MET
    elif state.iteration >= settings.max_iterations:
        reason = StopReason.MAX_ITERATIONS
    elif state.tokens_used >= settings.max_tokens:
        reason = StopReason.TOKEN_BUDGET
    elif state.elapsed_ms(now_ms) >= settings.timeout_ms:
        reason = StopReason.TIMEOUT
    elif detect_convergence(state.score_history, settings.convergence_threshold):
        reason = StopReason.CONVERGED
    else:
        locked = set(state.locked_sections) | set(newly_locked)
        remaining = len(state.all_sections - locked)
        if remaining == 0:
            reason = StopReason.ALL_SECTIONS_LOCKED
        else:
            return IterationDecision(
                should_continue=True,
                reason=StopReason.CONTINUE,
                newly_locked_sections=newly_locked,
                remaining_task_count=remaining,
            )

    return stop_decision(reason, newly_locked, latest_score, mode, settings)
