"""
Verdict consolidation into a targeted refinement plan.

Pipeline: pool issues from every judge, measure inter-judge agreement,
filter and resolve conflicts, attach targeting information to each accepted
issue, group issues into one task per section, and pack the tasks into
execution batches where no two neighbouring sections are patched together.
"""

import logging
import re
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..config import TOKEN_COSTS, RefinementSettings, refinement_settings
from ..models import Criterion, JudgeIssue, JudgeVerdict, Severity
from .agreement import AgreementLevel, calculate_agreement_score
from .conflict_resolver import ConflictResolution, normalize_location, resolve_conflicts

logger = logging.getLogger(__name__)

_NUMBERED_SECTION = re.compile(r"\bsec(?:tion)?[\s_-]*(\d+)\b")
_SECTION_ID_INDEX = re.compile(r"^sec_(\d+)$")
_NON_WORD = re.compile(r"[^0-9a-z]+")

_QUOTE_ANCHOR_CHARS = 100


class FixAction(str, Enum):
    """How a section should be repaired."""

    SURGICAL_EDIT = "SURGICAL_EDIT"
    REGENERATE_SECTION = "REGENERATE_SECTION"


class ContextScope(str, Enum):
    """How much surrounding text a patch needs to see."""

    PARAGRAPH = "paragraph"
    SECTION = "section"


@dataclass(frozen=True)
class TargetedIssue:
    """
    Accepted issue with targeting information for the patcher.

    Attributes:
        id: Unique issue id
        issue: The judge finding
        target_section_id: Section the issue is attached to ("sec_2")
        fix_action: Surgical edit or section regeneration
        context_scope: Paragraph or section context
        start_quote / end_quote: Anchors taken from the quoted text
        fix_instructions: Instructions for the patcher
    """

    id: str
    issue: JudgeIssue
    target_section_id: str
    fix_action: FixAction
    context_scope: ContextScope
    fix_instructions: str
    start_quote: str | None = None
    end_quote: str | None = None

    @property
    def severity(self) -> Severity:
        return self.issue.severity

    @property
    def criterion(self) -> Criterion:
        return self.issue.criterion


@dataclass(frozen=True)
class SectionRefinementTask:
    """All accepted issues for one section, merged into one patch task."""

    section_id: str
    section_title: str
    action: FixAction
    priority: Severity
    instructions: str
    source_issues: tuple[TargetedIssue, ...] = ()


@dataclass(frozen=True)
class RefinementPlan:
    """
    Plan produced by consolidation.

    Attributes:
        issues: Accepted judge issues
        tasks: One task per section, most severe first
        execution_batches: Tasks grouped for parallel patching
        sections_to_modify: Sections with at least one accepted issue
        sections_to_preserve: Known sections without issues
        estimated_tokens: Midpoint token estimate for executing the plan
        agreement_score: Agreement of the verdict set
        conflict_resolutions: Log of resolved conflicts
    """

    issues: list[JudgeIssue] = field(default_factory=list)
    tasks: list[SectionRefinementTask] = field(default_factory=list)
    execution_batches: list[list[SectionRefinementTask]] = field(default_factory=list)
    sections_to_modify: list[str] = field(default_factory=list)
    sections_to_preserve: list[str] = field(default_factory=list)
    estimated_tokens: int = 0
    agreement_score: float = 1.0
    conflict_resolutions: list[ConflictResolution] = field(default_factory=list)


@dataclass(frozen=True)
class ArbiterOutput:
    """Consolidation result handed to the refinement loop."""

    plan: RefinementPlan
    agreement_score: float
    agreement_level: AgreementLevel
    accepted_issues: list[TargetedIssue]
    rejected_issues: list[TargetedIssue]
    tokens_used: int = 0
    duration_ms: float = 0.0


def extract_section_id(location: str, section_titles: Sequence[str] = ()) -> str:
    """
    Map a free-text location to a section id.

    Example:
        >>> extract_section_id("Section 3, paragraph 2")
        'sec_3'
        >>> extract_section_id("Introduction", ["Introduction", "Basics"])
        'sec_1'
        >>> extract_section_id("Summary")
        'sec_summary'
    """
    normalized = normalize_location(location)
    match = _NUMBERED_SECTION.search(normalized)
    if match:
        return f"sec_{int(match.group(1))}"

    for index, title in enumerate(section_titles):
        title = normalize_location(title)
        if title and (normalized == title or title in normalized):
            return f"sec_{index + 1}"

    slug = _NON_WORD.sub("_", normalized).strip("_")
    return f"sec_{slug or 'unknown'}"


def section_ids_for(section_titles: Sequence[str]) -> list[str]:
    """Section ids for an ordered list of section titles."""
    return [f"sec_{index + 1}" for index in range(len(section_titles))]


def parse_section_index(section_id: str) -> int | None:
    """Numeric position of a "sec_N" id, None for named sections."""
    match = _SECTION_ID_INDEX.match(section_id)
    return int(match.group(1)) if match else None


def determine_fix_action(issue: JudgeIssue) -> FixAction:
    """
    Choose between a surgical edit and regenerating the section.

    Factual errors, critical structural or objective problems and
    completeness gaps regenerate the section; everything else is edited in place.
    """
    if issue.criterion is Criterion.FACTUAL_ACCURACY:
        return FixAction.REGENERATE_SECTION

    if issue.criterion in (Criterion.PEDAGOGICAL_STRUCTURE, Criterion.LEARNING_OBJECTIVE_ALIGNMENT):
        if issue.severity is Severity.CRITICAL:
            return FixAction.REGENERATE_SECTION

    if issue.severity is Severity.MINOR and issue.criterion in (
        Criterion.CLARITY_READABILITY,
        Criterion.ENGAGEMENT_EXAMPLES,
    ):
        return FixAction.SURGICAL_EDIT

    if issue.criterion is Criterion.COMPLETENESS:
        return FixAction.REGENERATE_SECTION

    return FixAction.SURGICAL_EDIT


def determine_context_scope(issue: JudgeIssue) -> ContextScope:
    if issue.quoted_text and len(issue.quoted_text) > 10:
        return ContextScope.PARAGRAPH
    if issue.criterion in (
        Criterion.PEDAGOGICAL_STRUCTURE,
        Criterion.LEARNING_OBJECTIVE_ALIGNMENT,
        Criterion.COMPLETENESS,
    ):
        return ContextScope.SECTION
    return ContextScope.PARAGRAPH


def build_fix_instructions(issue: JudgeIssue) -> str:
    instructions = f"[{issue.criterion.value}] {issue.severity.value.upper()}: {issue.description}"
    if issue.suggested_fix:
        instructions += f"\n\nSuggested fix: {issue.suggested_fix}"
    return instructions


def to_targeted_issues(
    issues: Sequence[JudgeIssue], section_titles: Sequence[str] = ()
) -> list[TargetedIssue]:
    """Attach id, target section, fix action and instructions to each issue."""
    targeted = []
    for issue in issues:
        quoted = issue.quoted_text
        targeted.append(
            TargetedIssue(
                id=str(uuid.uuid4()),
                issue=issue,
                target_section_id=extract_section_id(issue.location, section_titles),
                fix_action=determine_fix_action(issue),
                context_scope=determine_context_scope(issue),
                fix_instructions=build_fix_instructions(issue),
                start_quote=quoted[:_QUOTE_ANCHOR_CHARS] if quoted else None,
                end_quote=quoted[-_QUOTE_ANCHOR_CHARS:] if quoted else None,
            )
        )
    return targeted


def _synthesize_instructions(issues: Sequence[TargetedIssue]) -> str:
    lines = ["Address the following issues in this section:", ""]
    for number, targeted in enumerate(issues, start=1):
        issue = targeted.issue
        lines.append(f"{number}. [{issue.criterion.value}] {issue.severity.value.upper()}")
        lines.append(f"   Description: {issue.description}")
        if issue.suggested_fix:
            lines.append(f"   Suggested fix: {issue.suggested_fix}")
        if issue.quoted_text:
            lines.append(f'   Quoted text: "{issue.quoted_text[:_QUOTE_ANCHOR_CHARS]}..."')
        lines.append("")
    return "\n".join(lines)


def group_into_tasks(
    issues: Sequence[TargetedIssue], section_titles: Sequence[str] = ()
) -> list[SectionRefinementTask]:
    """
    Merge targeted issues into one task per section.

    A task regenerates the section if any of its issues requires it; its
    priority is the highest severity among its issues. Tasks are returned
    most severe first, keeping first-seen order within a priority.
    """
    groups: dict[str, list[TargetedIssue]] = {}
    for issue in issues:
        groups.setdefault(issue.target_section_id, []).append(issue)

    tasks = []
    for section_id, section_issues in groups.items():
        action = (
            FixAction.REGENERATE_SECTION
            if any(i.fix_action is FixAction.REGENERATE_SECTION for i in section_issues)
            else FixAction.SURGICAL_EDIT
        )
        priority = max((i.severity for i in section_issues), key=lambda s: s.rank)

        index = parse_section_index(section_id)
        if index is not None and 0 < index <= len(section_titles):
            title = section_titles[index - 1]
        else:
            title = f"Section {section_id.removeprefix('sec_')}"

        tasks.append(
            SectionRefinementTask(
                section_id=section_id,
                section_title=title,
                action=action,
                priority=priority,
                instructions=_synthesize_instructions(section_issues),
                source_issues=tuple(section_issues),
            )
        )

    return sorted(tasks, key=lambda t: -t.priority.rank)


def _adjacent(a: str, b: str, gap: int) -> bool:
    if a == b:
        return True
    ia, ib = parse_section_index(a), parse_section_index(b)
    if ia is None or ib is None:
        return False
    return abs(ia - ib) <= gap


def create_execution_batches(
    tasks: Sequence[SectionRefinementTask],
    max_concurrent: int | None = None,
    adjacent_gap: int | None = None,
) -> list[list[SectionRefinementTask]]:
    """
    Pack tasks into batches that can be patched in parallel.

    Greedy first-fit in task order: a task joins the first batch that has
    room and holds no section within ``adjacent_gap`` of it.

    Args:
        tasks: Tasks in priority order
        max_concurrent: Max tasks per batch (settings default: 3)
        adjacent_gap: Index distance treated as adjacent (settings default: 1)

    Returns:
        List of batches
    """
    if max_concurrent is None:
        max_concurrent = refinement_settings.max_concurrent_patchers
    if adjacent_gap is None:
        adjacent_gap = refinement_settings.adjacent_section_gap

    batches: list[list[SectionRefinementTask]] = []
    for task in tasks:
        for batch in batches:
            if len(batch) >= max_concurrent:
                continue
            if all(not _adjacent(task.section_id, t.section_id, adjacent_gap) for t in batch):
                batch.append(task)
                break
        else:
            batches.append([task])
    return batches


def estimate_plan_tokens(tasks: Sequence[SectionRefinementTask]) -> int:
    """Midpoint token estimate: patcher or section expander, plus a delta judge per task."""
    total = 0
    for task in tasks:
        if task.action is FixAction.SURGICAL_EDIT:
            total += TOKEN_COSTS["patcher"].midpoint
        else:
            total += TOKEN_COSTS["section_expander"].midpoint
        total += TOKEN_COSTS["delta_judge"].midpoint
    return total


def consolidate_verdicts(
    verdicts: Sequence[JudgeVerdict],
    section_titles: Sequence[str] = (),
    settings: RefinementSettings | None = None,
) -> ArbiterOutput:
    """
    Consolidate judge verdicts into a refinement plan.

    Args:
        verdicts: Complete verdict set from every judge in the batch
        section_titles: Ordered section titles of the lesson
        settings: Optional settings override

    Returns:
        ArbiterOutput with the plan and accepted / rejected targeted issues

    Raises:
        EmptyInputError: If no verdicts are given
    """
    settings = settings or refinement_settings
    started = time.monotonic()

    all_issues = [issue for verdict in verdicts for issue in verdict.issues]
    agreement = calculate_agreement_score(verdicts, settings)
    resolved = resolve_conflicts(all_issues, agreement.score, len(verdicts), settings)

    accepted = to_targeted_issues(resolved.accepted, section_titles)
    tasks = group_into_tasks(accepted, section_titles)
    batches = create_execution_batches(
        tasks, settings.max_concurrent_patchers, settings.adjacent_section_gap
    )

    sections_to_modify = list(dict.fromkeys(i.target_section_id for i in accepted))
    sections_to_preserve = [
        section_id
        for section_id in section_ids_for(section_titles)
        if section_id not in sections_to_modify
    ]

    plan = RefinementPlan(
        issues=list(resolved.accepted),
        tasks=tasks,
        execution_batches=batches,
        sections_to_modify=sections_to_modify,
        sections_to_preserve=sections_to_preserve,
        estimated_tokens=estimate_plan_tokens(tasks),
        agreement_score=agreement.score,
        conflict_resolutions=resolved.log,
    )

    logger.info(
        f"Arbiter: {len(accepted)} accepted, {len(resolved.rejected)} rejected, "
        f"{len(tasks)} tasks in {len(batches)} batches (agreement {agreement.score:.2f})"
    )

    return ArbiterOutput(
        plan=plan,
        agreement_score=agreement.score,
        agreement_level=agreement.level,
        accepted_issues=accepted,
        rejected_issues=to_targeted_issues(resolved.rejected, section_titles),
        tokens_used=0,
        duration_ms=(time.monotonic() - started) * 1000,
    )
