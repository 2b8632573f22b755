"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Callable

import pytest

from refinement_engine.models import (
    CriteriaScores,
    IterationResult,
    JudgeIssue,
    JudgeVerdict,
    RefinementState,
)


def build_issue(
    criterion: str = "clarity_readability",
    severity: str = "major",
    location: str = "section 1",
    description: str = "Explanation is hard to follow",
    suggested_fix: str | None = None,
    quoted_text: str | None = None,
) -> JudgeIssue:
    """Create a judge issue with sensible defaults."""
    return JudgeIssue(
        criterion=criterion,
        severity=severity,
        location=location,
        description=description,
        suggested_fix=suggested_fix,
        quoted_text=quoted_text,
    )


def build_scores(value: float = 0.8, **overrides: float) -> CriteriaScores:
    """Scores for all six criteria, each ``value`` unless overridden."""
    scores = {
        "learning_objective_alignment": value,
        "pedagogical_structure": value,
        "factual_accuracy": value,
        "clarity_readability": value,
        "engagement_examples": value,
        "completeness": value,
    }
    scores.update(overrides)
    return scores


def build_verdict(
    overall: float | None = 0.8,
    scores: CriteriaScores | None = None,
    issues: list[JudgeIssue] | None = None,
    tokens_used: int = 0,
) -> JudgeVerdict:
    """Create a judge verdict; criteria default to the overall score."""
    return JudgeVerdict(
        criteria_scores=scores if scores is not None else build_scores(overall or 0.8),
        issues=issues or [],
        overall_score=overall,
        judge_model="openai/gpt-oss-120b",
        tokens_used=tokens_used,
    )


@pytest.fixture
def make_issue() -> Callable[..., JudgeIssue]:
    """Factory for judge issues."""
    return build_issue


@pytest.fixture
def make_verdict() -> Callable[..., JudgeVerdict]:
    """Factory for judge verdicts."""
    return build_verdict


@pytest.fixture
def make_scores() -> Callable[..., CriteriaScores]:
    """Factory for full criterion score maps."""
    return build_scores


@pytest.fixture
def make_history() -> Callable[..., list[IterationResult]]:
    """Factory turning a list of scores into an iteration history."""

    def _make(scores: list[float]) -> list[IterationResult]:
        return [
            IterationResult(iteration=i, score=score, content=f"content v{i}")
            for i, score in enumerate(scores)
        ]

    return _make


@pytest.fixture
def make_state() -> Callable[..., RefinementState]:
    """Factory for refinement state snapshots with a fixed start time."""

    def _make(
        iteration: int = 1,
        score_history: tuple[float, ...] = (0.70, 0.75),
        tokens_used: int = 3000,
        section_edit_count: dict[str, int] | None = None,
        locked_sections: frozenset[str] = frozenset(),
        start_time_ms: float = 1_000_000.0,
    ) -> RefinementState:
        return RefinementState(
            iteration=iteration,
            score_history=tuple(score_history),
            locked_sections=frozenset(locked_sections),
            section_edit_count=(
                dict(section_edit_count)
                if section_edit_count is not None
                else {"sec_intro": 1, "sec_body": 0}
            ),
            tokens_used=tokens_used,
            start_time_ms=start_time_ms,
        )

    return _make


@pytest.fixture
def sample_lesson() -> str:
    """Short multi-section lesson in markdown."""
    return (
        "# Introduction\n\n"
        "Photosynthesis turns light into chemical energy. Plants use it to grow.\n\n"
        "# Core concepts\n\n"
        "Chlorophyll absorbs light. The energy splits water molecules. Oxygen is released.\n\n"
        "# Summary\n\n"
        "Plants store the energy as glucose. Animals rely on that energy too.\n"
    )
