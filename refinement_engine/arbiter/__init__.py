"""
Arbiter: consolidation of independent judge verdicts.

Public API:
    - AgreementLevel / AgreementResult: Inter-judge agreement
    - calculate_agreement_score(): Krippendorff's alpha over verdicts
    - agreement_level(): Map score to level
    - PRIORITY_HIERARCHY: Criterion order used to resolve conflicts
    - filter_by_agreement(): Drop issues the judges do not agree on
    - resolve_conflicts(): Keep one issue per location
    - normalize_location(): Canonical location key
    - consolidate_verdicts(): Verdicts -> refinement plan
    - create_execution_batches(): Non-adjacent parallel batches
"""

from .agreement import (
    AgreementLevel,
    AgreementResult,
    agreement_level,
    calculate_agreement_score,
    krippendorff_alpha_interval,
)
from .conflict_resolver import (
    PRIORITY_HIERARCHY,
    ConflictResolution,
    ConflictResolutionResult,
    FilterResult,
    criterion_priority,
    filter_by_agreement,
    normalize_location,
    resolve_conflicts,
)
from .consolidate import (
    ArbiterOutput,
    ContextScope,
    FixAction,
    RefinementPlan,
    SectionRefinementTask,
    TargetedIssue,
    consolidate_verdicts,
    create_execution_batches,
    determine_fix_action,
    estimate_plan_tokens,
    extract_section_id,
    group_into_tasks,
    section_ids_for,
)

__all__ = [
    # Dataclasses
    "AgreementResult",
    "ArbiterOutput",
    "ConflictResolution",
    "ConflictResolutionResult",
    "FilterResult",
    "RefinementPlan",
    "SectionRefinementTask",
    "TargetedIssue",
    # Enums
    "AgreementLevel",
    "ContextScope",
    "FixAction",
    # Functions
    "agreement_level",
    "calculate_agreement_score",
    "krippendorff_alpha_interval",
    "criterion_priority",
    "filter_by_agreement",
    "normalize_location",
    "resolve_conflicts",
    "consolidate_verdicts",
    "create_execution_batches",
    "determine_fix_action",
    "estimate_plan_tokens",
    "extract_section_id",
    "group_into_tasks",
    "section_ids_for",
    # Constants
    "PRIORITY_HIERARCHY",
]
