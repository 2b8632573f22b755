# Copyright (c) 2025 Tolboom Medical
# Licensed under Prosperity Public License 3.0.0
# Commercial use requires separate license - see LICENSE and COMMERCIAL_LICENSE.md

"""
Data model for the targeted-refinement loop.

Judge verdicts and patch results cross the boundary to external collaborators
(language-model calls), so they are pydantic models and invalid payloads fail
with pydantic.ValidationError. Loop state and iteration history are frozen
dataclasses: every transition returns a new snapshot instead of mutating in place.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidTokenCountError

Score = Annotated[float, Field(ge=0.0, le=1.0)]

# Criterion name -> score in [0, 1]
CriteriaScores = dict[str, float]

# Criterion name -> score captured when the criterion first passed the lock threshold
QualityLockMap = dict[str, float]


class Criterion(str, Enum):
    """Closed set of rubric criteria scored by every judge."""

    LEARNING_OBJECTIVE_ALIGNMENT = "learning_objective_alignment"
    PEDAGOGICAL_STRUCTURE = "pedagogical_structure"
    FACTUAL_ACCURACY = "factual_accuracy"
    CLARITY_READABILITY = "clarity_readability"
    ENGAGEMENT_EXAMPLES = "engagement_examples"
    COMPLETENESS = "completeness"

    @property
    def label(self) -> str:
        """Human-readable name ("factual accuracy")."""
        return self.value.replace("_", " ")


class Severity(str, Enum):
    """Issue severity, ordered critical > major > minor."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.CRITICAL: 3,
    Severity.MAJOR: 2,
    Severity.MINOR: 1,
}


class _BoundaryModel(BaseModel):
    """Accepts camelCase payloads from collaborators as well as snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class JudgeIssue(_BoundaryModel):
    """
    A single quality finding reported by a judge.

    Attributes:
        criterion: Rubric criterion the issue belongs to
        severity: critical, major or minor
        location: Free-text location, e.g. "Section 2, paragraph 3"
        description: What is wrong
        suggested_fix: Optional fix proposed by the judge
        quoted_text: Optional excerpt the issue refers to
    """

    model_config = ConfigDict(frozen=True)

    criterion: Criterion
    severity: Severity
    location: str
    description: str
    suggested_fix: str | None = None
    quoted_text: str | None = None


class JudgeVerdict(_BoundaryModel):
    """
    Structured verdict returned by one judge for one piece of content.

    Attributes:
        criteria_scores: Score per criterion, each in [0, 1]
        issues: Findings reported by the judge
        overall_score: Judge's scalar rollup (weighted rubric score if omitted)
        judge_model: Model identifier of the judge
        tokens_used: Tokens consumed by the judge call
    """

    criteria_scores: dict[str, Score]
    issues: list[JudgeIssue] = Field(default_factory=list)
    overall_score: Score | None = None
    judge_model: str | None = None
    tokens_used: int = Field(default=0, ge=0)

    @field_validator("criteria_scores", mode="before")
    @classmethod
    def _check_criteria(cls, value: Any) -> Any:
        """Reject criteria outside the closed rubric set; store plain names."""
        if not isinstance(value, dict):
            return value
        return {Criterion(key).value: score for key, score in value.items()}


class PatchResult(_BoundaryModel):
    """
    Result returned by the external patch executor.

    Only tokens_used (cost accounting) and success (edit counting) are
    consumed by the control loop.
    """

    patched_content: str
    success: bool
    tokens_used: int = Field(default=0, ge=0)
    error_message: str | None = None


@dataclass(frozen=True)
class IterationResult:
    """
    Outcome of one refinement cycle. Never mutated after creation.

    Attributes:
        iteration: Iteration index (0 = initial content)
        score: Scalar rollup score for the cycle
        content: Content snapshot after the cycle
        remaining_issues: Issues still unresolved after the cycle
        criteria_scores: Averaged criterion scores, when available
    """

    iteration: int
    score: float
    content: str
    remaining_issues: tuple[JudgeIssue, ...] = ()
    criteria_scores: CriteriaScores = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dict for serialization."""
        return {
            "iteration": self.iteration,
            "score": self.score,
            "content": self.content,
            "remaining_issues": [issue.model_dump(mode="json") for issue in self.remaining_issues],
            "criteria_scores": dict(self.criteria_scores),
        }


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RefinementState:
    """
    Immutable snapshot of refinement loop state.

    The score history holds the initial score at position 0, so
    len(score_history) == iteration + 1 once a session has started.
    Edit counts and tokens_used only ever grow.

    Attributes:
        iteration: Completed refinement cycles
        score_history: Scalar score per cycle, initial score first
        locked_sections: Sections that may no longer be edited
        section_edit_count: Successful edits per section (keys define the section set)
        tokens_used: Tokens consumed so far
        start_time_ms: Session start, epoch milliseconds
        quality_locks: Criterion scores captured at session start
    """

    iteration: int = 0
    score_history: tuple[float, ...] = ()
    locked_sections: frozenset[str] = frozenset()
    section_edit_count: dict[str, int] = field(default_factory=dict)
    tokens_used: int = 0
    start_time_ms: float = field(default_factory=_now_ms)
    quality_locks: QualityLockMap = field(default_factory=dict)

    @classmethod
    def start(
        cls,
        initial_score: float,
        section_ids: list[str],
        quality_locks: QualityLockMap | None = None,
        start_time_ms: float | None = None,
    ) -> "RefinementState":
        """
        Create the state for a new session.

        Args:
            initial_score: Score of the unrefined content (iteration 0)
            section_ids: Every section that may be refined
            quality_locks: Criterion locks captured from the initial scores
            start_time_ms: Session start (defaults to now)

        Example:
            >>> state = RefinementState.start(0.72, ["sec_1", "sec_2"])
            >>> state.score_history
            (0.72,)
        """
        return cls(
            iteration=0,
            score_history=(initial_score,),
            section_edit_count={section_id: 0 for section_id in section_ids},
            start_time_ms=_now_ms() if start_time_ms is None else start_time_ms,
            quality_locks=dict(quality_locks or {}),
        )

    @property
    def all_sections(self) -> set[str]:
        """Every known section id."""
        return set(self.section_edit_count) | set(self.locked_sections)

    @property
    def latest_score(self) -> float | None:
        return self.score_history[-1] if self.score_history else None

    def elapsed_ms(self, now_ms: float | None = None) -> float:
        """Milliseconds since the session started."""
        return (_now_ms() if now_ms is None else now_ms) - self.start_time_ms

    def add_tokens(self, tokens: int) -> "RefinementState":
        """Return a new state with additional tokens accounted."""
        if tokens < 0:
            raise InvalidTokenCountError(tokens, "total")
        return replace(self, tokens_used=self.tokens_used + tokens)

    def record_patch(self, section_id: str, success: bool, tokens_used: int) -> "RefinementState":
        """
        Return a new state after a patch attempt.

        Tokens are always accounted. Only a successful patch advances the
        section's edit count.
        """
        state = self.add_tokens(tokens_used)
        if not success:
            return state
        edit_count = dict(state.section_edit_count)
        edit_count[section_id] = edit_count.get(section_id, 0) + 1
        return replace(state, section_edit_count=edit_count)

    def record_iteration(self, score: float) -> "RefinementState":
        """Return a new state with the cycle's score appended."""
        return replace(
            self,
            iteration=self.iteration + 1,
            score_history=self.score_history + (score,),
        )

    def track_sections(self, section_ids) -> "RefinementState":
        """Return a new state that also tracks the given sections (edit count 0)."""
        new_ids = [s for s in section_ids if s not in self.section_edit_count]
        if not new_ids:
            return self
        edit_count = dict(self.section_edit_count)
        edit_count.update({section_id: 0 for section_id in new_ids})
        return replace(self, section_edit_count=edit_count)

    def lock_sections(self, section_ids) -> "RefinementState":
        """Return a new state with the given sections locked."""
        section_ids = frozenset(section_ids)
        if section_ids <= self.locked_sections:
            return self
        return replace(self, locked_sections=self.locked_sections | section_ids)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "iteration": self.iteration,
            "score_history": list(self.score_history),
            "locked_sections": sorted(self.locked_sections),
            "section_edit_count": dict(self.section_edit_count),
            "tokens_used": self.tokens_used,
            "start_time_ms": self.start_time_ms,
            "quality_locks": dict(self.quality_locks),
        }
