"""
Conflict resolution among judge findings.

Issues pooled from several judges are first filtered by how much the judges
agree overall, then issues reported at the same location are reduced to one:
the criterion highest in PRIORITY_HIERARCHY wins, and within a criterion the
more severe issue wins. Issues at different locations never conflict.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..config import RefinementSettings
from ..models import Criterion, JudgeIssue, Severity
from .agreement import AgreementLevel, agreement_level

logger = logging.getLogger(__name__)

# Lower index wins a same-location conflict
PRIORITY_HIERARCHY: tuple[Criterion, ...] = (
    Criterion.FACTUAL_ACCURACY,
    Criterion.LEARNING_OBJECTIVE_ALIGNMENT,
    Criterion.PEDAGOGICAL_STRUCTURE,
    Criterion.CLARITY_READABILITY,
    Criterion.ENGAGEMENT_EXAMPLES,
    Criterion.COMPLETENESS,
)

_CRITERION_PRIORITY = {criterion: index for index, criterion in enumerate(PRIORITY_HIERARCHY)}

# Sub-detail after these separators is folded into the parent unit
_SUB_DETAIL = re.compile(r",|;|:|\(|\s-\s")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FilterResult:
    """Issues accepted and rejected by agreement filtering."""

    accepted: list[JudgeIssue] = field(default_factory=list)
    rejected: list[JudgeIssue] = field(default_factory=list)


@dataclass(frozen=True)
class ConflictResolution:
    """
    Record of one resolved same-location conflict.

    Attributes:
        location: Normalized location of the group
        winner: Issue that was kept
        losers: Issues that were dropped
        resolution: Human-readable explanation naming both criteria
    """

    location: str
    winner: JudgeIssue
    losers: tuple[JudgeIssue, ...]
    resolution: str

    def to_dict(self) -> dict:
        return {
            "location": self.location,
            "winner": self.winner.model_dump(mode="json"),
            "losers": [issue.model_dump(mode="json") for issue in self.losers],
            "resolution": self.resolution,
        }


@dataclass(frozen=True)
class ConflictResolutionResult:
    """Accepted issues, rejected issues and the conflict log."""

    accepted: list[JudgeIssue] = field(default_factory=list)
    rejected: list[JudgeIssue] = field(default_factory=list)
    log: list[ConflictResolution] = field(default_factory=list)


def criterion_priority(criterion: Criterion | str) -> int:
    """Position of a criterion in PRIORITY_HIERARCHY (0 = highest priority)."""
    return _CRITERION_PRIORITY[Criterion(criterion)]


def normalize_location(location: str) -> str:
    """
    Canonical grouping key for a free-text location.

    Example:
        >>> normalize_location("Section 2, paragraph 3")
        'section 2'
        >>> normalize_location("  Introduction ")
        'introduction'
    """
    parent = _SUB_DETAIL.split(location, maxsplit=1)[0]
    return _WHITESPACE.sub(" ", parent).strip().lower()


def _group_by_location(issues: Sequence[JudgeIssue]) -> dict[str, list[int]]:
    """Positions of the issues at each normalized location."""
    groups: dict[str, list[int]] = {}
    for position, issue in enumerate(issues):
        groups.setdefault(normalize_location(issue.location), []).append(position)
    return groups


def filter_by_agreement(
    issues: Sequence[JudgeIssue],
    level: AgreementLevel | str,
    judge_count: int,
) -> FilterResult:
    """
    Filter issues by agreement level.

    Policy:
        high: accept all
        moderate: accept issues whose location was reported at least twice
            (accept all when there is only one judge)
        low: accept only critical issues

    Args:
        issues: Issues pooled from all judges
        level: Agreement level of the verdict set
        judge_count: Number of judges that produced the issues

    Returns:
        FilterResult preserving the input order
    """
    level = AgreementLevel(level)

    if level is AgreementLevel.HIGH or (level is AgreementLevel.MODERATE and judge_count <= 1):
        return FilterResult(accepted=list(issues), rejected=[])

    if level is AgreementLevel.MODERATE:
        groups = _group_by_location(issues)
        confirmed = {location for location, group in groups.items() if len(group) >= 2}
        accepted = [i for i in issues if normalize_location(i.location) in confirmed]
        rejected = [i for i in issues if normalize_location(i.location) not in confirmed]
    else:
        accepted = [i for i in issues if i.severity is Severity.CRITICAL]
        rejected = [i for i in issues if i.severity is not Severity.CRITICAL]

    if rejected:
        logger.info(f"Agreement {level.value}: rejected {len(rejected)} of {len(issues)} issues")
    return FilterResult(accepted=accepted, rejected=rejected)


def _winner_key(issue: JudgeIssue) -> tuple[int, int]:
    return (criterion_priority(issue.criterion), -issue.severity.rank)


def resolve_conflicts(
    issues: Sequence[JudgeIssue],
    agreement_score: float,
    judge_count: int | None = None,
    settings: RefinementSettings | None = None,
) -> ConflictResolutionResult:
    """
    Filter issues by agreement and resolve same-location conflicts.

    Args:
        issues: Issues pooled from all judges
        agreement_score: Agreement score of the verdict set
        judge_count: Number of judges (None means several judges)
        settings: Optional settings override for agreement cut points

    Returns:
        ConflictResolutionResult; rejected holds issues filtered by
        agreement followed by conflict losers

    Example:
        >>> result = resolve_conflicts([factual_issue, clarity_issue], 0.85)
        >>> [i.criterion.value for i in result.accepted]
        ['factual_accuracy']
    """
    level = agreement_level(agreement_score, settings)
    filtered = filter_by_agreement(
        issues, level, judge_count if judge_count is not None else 2
    )

    candidates = filtered.accepted
    losers: list[JudgeIssue] = []
    log: list[ConflictResolution] = []
    winner_positions: set[int] = set()

    for location, group in _group_by_location(candidates).items():
        # Positions, not identity: the same issue object may be pooled twice
        winner_position = min(group, key=lambda position: _winner_key(candidates[position]))
        winner = candidates[winner_position]
        winner_positions.add(winner_position)
        if len(group) == 1:
            continue

        group_losers = tuple(
            candidates[position] for position in group if position != winner_position
        )
        losers.extend(group_losers)
        lost = ", ".join(
            f"{issue.criterion.value} ({issue.severity.value})" for issue in group_losers
        )
        log.append(
            ConflictResolution(
                location=location,
                winner=winner,
                losers=group_losers,
                resolution=(
                    f"{winner.criterion.value} ({winner.severity.value}) "
                    f"takes priority over {lost} at '{location}'"
                ),
            )
        )

    # Keep winners in their original order
    accepted = [candidates[position] for position in sorted(winner_positions)]

    if log:
        logger.info(f"Resolved {len(log)} location conflicts, dropped {len(losers)} issues")

    return ConflictResolutionResult(
        accepted=accepted,
        rejected=list(filtered.rejected) + losers,
        log=log,
    )
