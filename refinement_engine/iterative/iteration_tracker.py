"""
Iteration history for the targeted-refinement loop.

IterationTracker owns the append-only sequence of IterationResult records
produced by the loop runner. Records are frozen once created; the tracker
only ever appends and hands out immutable snapshots.
"""

from collections.abc import Iterable

from ..models import CriteriaScores, IterationResult, JudgeIssue


class IterationTracker:
    """
    Tracks the iteration history of one refinement session.

    Example:
        >>> tracker = IterationTracker()
        >>> tracker.add_iteration(score=0.72, content=lesson)
        >>> tracker.get_scores()
        [0.72]
    """

    def __init__(self):
        self._iterations: list[IterationResult] = []

    @property
    def history(self) -> tuple[IterationResult, ...]:
        """Immutable snapshot of all iterations."""
        return tuple(self._iterations)

    @property
    def iteration_count(self) -> int:
        return len(self._iterations)

    def add_iteration(
        self,
        score: float,
        content: str,
        remaining_issues: Iterable[JudgeIssue] = (),
        criteria_scores: CriteriaScores | None = None,
    ) -> IterationResult:
        """
        Append the result of a completed cycle.

        Args:
            score: Scalar score for the cycle
            content: Content snapshot after the cycle
            remaining_issues: Issues still unresolved
            criteria_scores: Averaged criterion scores

        Returns:
            The created IterationResult (iteration index = position in history)
        """
        result = IterationResult(
            iteration=len(self._iterations),
            score=score,
            content=content,
            remaining_issues=tuple(remaining_issues),
            criteria_scores=dict(criteria_scores or {}),
        )
        self._iterations.append(result)
        return result

    def get_iteration(self, iteration: int) -> IterationResult | None:
        """Get iteration by index."""
        if 0 <= iteration < len(self._iterations):
            return self._iterations[iteration]
        return None

    def get_latest_iteration(self) -> IterationResult | None:
        if self._iterations:
            return self._iterations[-1]
        return None

    def get_scores(self) -> list[float]:
        return [it.score for it in self._iterations]

    def get_peak_score(self) -> float:
        """Get the highest score achieved."""
        scores = self.get_scores()
        return max(scores) if scores else 0.0

    def get_improvement_trajectory(self) -> list[float]:
        """
        Score deltas between consecutive iterations.

        Positive = improvement, negative = regression.
        """
        scores = self.get_scores()
        return [scores[i] - scores[i - 1] for i in range(1, len(scores))]

    def to_list(self) -> list[dict]:
        """Serialize the history."""
        return [it.to_dict() for it in self._iterations]
