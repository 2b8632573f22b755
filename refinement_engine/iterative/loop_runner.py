"""
Targeted-refinement loop runner.

This module provides the RefinementLoopRunner class that drives one refinement
session: consolidate judge verdicts into section tasks, patch sections in
non-adjacent batches, re-judge, guard quality locks, and ask the iteration
controller whether to continue. When the loop stops without reaching the
accept threshold, the best-effort selector decides what is returned.

Patching and judging are external collaborators supplied as callbacks.
Transient collaborator failures (CollaboratorError) are retried with tenacity;
validation and cost overflow errors propagate to the caller.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from rich.console import Console
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..arbiter.consolidate import (
    ArbiterOutput,
    RefinementPlan,
    SectionRefinementTask,
    consolidate_verdicts,
    create_execution_batches,
)
from ..config import OperationMode, RefinementSettings, refinement_settings
from ..errors import CollaboratorError
from ..llm.cost_calculator import CostLedger
from ..models import JudgeVerdict, PatchResult, RefinementState
from ..quality.locks import check_quality_locks, initialize_quality_locks
from ..quality.readability import calculate_universal_readability, validate_readability
from ..quality.scoring import average_criteria_scores, average_verdict_score
from ..quality.thresholds import RefinementStatus
from .best_effort import BestEffortSelection, select_best_iteration
from .iteration_controller import (
    IterationDecision,
    StopReason,
    detect_score_oscillation,
    should_continue_iteration,
    stop_decision,
)
from .iteration_tracker import IterationTracker

logger = logging.getLogger(__name__)

# Default console for output
console = Console()

# Share of the token budget at which a budget warning is emitted
BUDGET_WARNING_RATIO = 0.8

# Event types passed to the event callback
EVENT_REFINEMENT_START = "refinement_start"
EVENT_ARBITER_COMPLETE = "arbiter_complete"
EVENT_BATCH_STARTED = "batch_started"
EVENT_TASK_COMPLETED = "task_completed"
EVENT_SECTION_LOCKED = "section_locked"
EVENT_QUALITY_LOCK_TRIGGERED = "quality_lock_triggered"
EVENT_ITERATION_COMPLETE = "iteration_complete"
EVENT_BUDGET_WARNING = "budget_warning"
EVENT_ESCALATION_TRIGGERED = "escalation_triggered"
EVENT_REFINEMENT_COMPLETE = "refinement_complete"


class PatchFunc(Protocol):
    """Protocol for the patch executor."""

    def __call__(self, content: str, task: SectionRefinementTask) -> PatchResult:
        """Apply a section task to the content and return the patch result."""
        ...


class JudgeFunc(Protocol):
    """Protocol for judge invocation."""

    def __call__(self, content: str) -> list[JudgeVerdict]:
        """Score content with every judge; return the complete verdict set."""
        ...


@dataclass
class RefinementLoopConfig:
    """
    Configuration for a targeted-refinement loop.

    Attributes:
        operation_mode: full-auto or semi-auto
        settings: Limits and thresholds (uses global settings if None)
        step_name: Display name for the step
        show_banner: Print a header before the loop starts
        step_number: Step number for display purposes
        check_readability: Reject patches that break readability limits
        cost_model: Model used to price patch and judge calls (no ledger if None)
        retry_attempts: Attempts per collaborator call for CollaboratorError
        retry_min_wait: Minimum backoff between attempts in seconds
        retry_max_wait: Maximum backoff between attempts in seconds
    """

    operation_mode: OperationMode = OperationMode.FULL_AUTO
    settings: RefinementSettings | None = None
    step_name: str = "TARGETED REFINEMENT"
    show_banner: bool = True
    step_number: int = 6
    check_readability: bool = True
    cost_model: str | None = None
    retry_attempts: int = 3
    retry_min_wait: float = 4
    retry_max_wait: float = 10


@dataclass
class RefinementLoopResult:
    """
    Result of a targeted-refinement session.

    Attributes:
        content: Final content returned to the caller
        status: Final disposition
        final_score: Score of the returned content
        iteration_count: Refinement cycles run (initial evaluation excluded)
        tokens_used: Tokens consumed by patches and judges
        duration_ms: Wall-clock duration
        stop_reason: Stop condition that ended the loop
        history: Iteration records, initial evaluation first
        best_effort: Best-effort selection, when the accept threshold was missed
        improvement_hints: Hints for the remaining issues
        locked_sections: Sections locked at the end
        escalation_recommended: Advisory flag from the iteration controller
        cost: Cost ledger summary when a cost model is configured
    """

    content: str
    status: RefinementStatus
    final_score: float
    iteration_count: int
    tokens_used: int
    duration_ms: float
    stop_reason: StopReason
    history: list = field(default_factory=list)
    best_effort: BestEffortSelection | None = None
    improvement_hints: list[str] = field(default_factory=list)
    locked_sections: list[str] = field(default_factory=list)
    escalation_recommended: bool = False
    cost: dict | None = None

    @property
    def improvement_trajectory(self) -> list[float]:
        return [it.score for it in self.history]

    def to_dict(self) -> dict:
        """Convert to dict for serialization."""
        result = {
            "content": self.content,
            "status": self.status.value,
            "final_score": self.final_score,
            "iteration_count": self.iteration_count,
            "tokens_used": self.tokens_used,
            "duration_ms": self.duration_ms,
            "stop_reason": self.stop_reason.value,
            "improvement_trajectory": self.improvement_trajectory,
            "improvement_hints": list(self.improvement_hints),
            "locked_sections": list(self.locked_sections),
            "escalation_recommended": self.escalation_recommended,
        }

        if self.best_effort is not None:
            result["selected_iteration"] = self.best_effort.selected_iteration
            result["selection_reason"] = self.best_effort.selection_reason
        if self.cost is not None:
            result["cost"] = self.cost

        return result


class RefinementLoopRunner:
    """
    Runner for one targeted-refinement session.

    Iterations are strictly sequential: a cycle's decision is only taken once
    the previous cycle's patches and verdicts are complete.

    Example:
        >>> runner = RefinementLoopRunner(
        ...     config=RefinementLoopConfig(operation_mode=OperationMode.SEMI_AUTO),
        ...     initial_content=lesson_markdown,
        ...     section_titles=["Introduction", "Core concepts", "Summary"],
        ...     patch_fn=lambda content, task: patcher.apply(content, task),
        ...     judge_fn=lambda content: judges.evaluate(content),
        ... )
        >>> result = runner.run()
        >>> result.status
        <RefinementStatus.ACCEPTED: 'accepted'>
    """

    def __init__(
        self,
        config: RefinementLoopConfig,
        initial_content: str,
        patch_fn: PatchFunc,
        judge_fn: JudgeFunc,
        section_titles: Sequence[str] = (),
        initial_verdicts: Sequence[JudgeVerdict] | None = None,
        event_callback: Callable[[dict], None] | None = None,
        console_instance: Console | None = None,
    ):
        """
        Initialize the loop runner.

        Args:
            config: Loop configuration
            initial_content: Content to refine
            patch_fn: Patch executor for one section task
            judge_fn: Judge invocation returning all verdicts for the content
            section_titles: Ordered section titles of the lesson
            initial_verdicts: Verdicts for the initial content (judged if None)
            event_callback: Optional callback receiving progress events
            console_instance: Console for output (uses default if None)
        """
        self.config = config
        self.settings = config.settings or refinement_settings
        self.mode = OperationMode(config.operation_mode)
        self.initial_content = initial_content
        self.patch_fn = patch_fn
        self.judge_fn = judge_fn
        self.section_titles = list(section_titles)
        self.initial_verdicts = list(initial_verdicts) if initial_verdicts is not None else None
        self.event_callback = event_callback
        self.console = console_instance or console

        self.tracker = IterationTracker()
        self.ledger = (
            CostLedger(session_id=config.step_name, settings=self.settings)
            if config.cost_model
            else None
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(config.retry_attempts),
            wait=wait_exponential(
                multiplier=1, min=config.retry_min_wait, max=config.retry_max_wait
            ),
            retry=retry_if_exception_type(CollaboratorError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        self._budget_warned = False

    def run(self) -> RefinementLoopResult:
        """
        Execute the refinement loop.

        Returns:
            RefinementLoopResult with final content, status and history

        Raises:
            CollaboratorError: If a collaborator keeps failing after retries
            CostCalculationError: If cost accounting fails
        """
        started = time.monotonic()

        if self.config.show_banner:
            self._display_header()

        content = self.initial_content
        verdicts = self.initial_verdicts
        initial_tokens = 0
        if verdicts is None:
            verdicts = self._judge(content)
            initial_tokens = sum(v.tokens_used for v in verdicts)
            self._record_cost("judge", initial_tokens, 0)

        score = average_verdict_score(verdicts)
        criteria = average_criteria_scores(verdicts)
        arbiter = consolidate_verdicts(verdicts, self.section_titles, self.settings)
        plan = arbiter.plan

        state = RefinementState.start(
            initial_score=score,
            section_ids=plan.sections_to_modify,
            quality_locks=initialize_quality_locks(criteria, self.settings.quality_lock_threshold),
        )
        state = state.add_tokens(initial_tokens)

        self.tracker.add_iteration(score, content, plan.issues, criteria)
        self._emit(
            EVENT_REFINEMENT_START,
            0,
            initial_score=score,
            operation_mode=self.mode.value,
            locked_criteria=sorted(state.quality_locks),
        )
        self._emit_arbiter(arbiter, 0)

        self.console.print("\n[bold cyan]─── Iteration 0 (initial) ───[/bold cyan]")
        self._display_scores(score, criteria, 0)

        while True:
            decision = should_continue_iteration(state, score, self.mode, self.settings)
            state = self._apply_section_locks(state, decision)
            if decision.should_continue and not self._available_tasks(plan, state):
                logger.info("Every remaining task targets a locked section")
                decision = stop_decision(
                    StopReason.ALL_SECTIONS_LOCKED,
                    decision.newly_locked_sections,
                    score,
                    self.mode,
                    self.settings,
                )
            if not decision.should_continue:
                break

            iteration = state.iteration + 1
            self.console.print(f"\n[bold cyan]─── Iteration {iteration} ───[/bold cyan]")

            content, state, patched_sections = self._execute_plan(content, plan, state, iteration)

            verdicts = self._judge(content)
            state = state.add_tokens(sum(v.tokens_used for v in verdicts))
            self._record_judge_cost(verdicts, iteration)

            new_score = average_verdict_score(verdicts)
            criteria = average_criteria_scores(verdicts)

            state = self._check_regressions(state, criteria, patched_sections, iteration)
            state = self._check_oscillation(state, new_score, patched_sections, iteration)

            state = state.record_iteration(new_score)
            score = new_score

            arbiter = consolidate_verdicts(verdicts, self.section_titles, self.settings)
            plan = arbiter.plan
            state = state.track_sections(plan.sections_to_modify)
            self._emit_arbiter(arbiter, iteration)

            self.tracker.add_iteration(score, content, plan.issues, criteria)
            self._display_scores(score, criteria, iteration)
            self._emit(
                EVENT_ITERATION_COMPLETE,
                iteration,
                score=score,
                tokens_used=state.tokens_used,
                patched_sections=patched_sections,
                remaining_issues=len(plan.issues),
            )
            self._check_budget(state, iteration)

        return self._finish(content, score, state, decision, started)

    def _execute_plan(
        self,
        content: str,
        plan: RefinementPlan,
        state: RefinementState,
        iteration: int,
    ) -> tuple[str, RefinementState, list[str]]:
        """Patch every unlocked task in non-adjacent batches."""
        batches = create_execution_batches(
            self._available_tasks(plan, state),
            self.settings.max_concurrent_patchers,
            self.settings.adjacent_section_gap,
        )
        patched_sections: list[str] = []

        for batch_index, batch in enumerate(batches):
            if self._budget_exhausted(state):
                self.console.print("[yellow]⚠️ Budget exhausted, skipping remaining batches[/yellow]")
                break

            self._emit(
                EVENT_BATCH_STARTED,
                iteration,
                batch_index=batch_index,
                sections=[t.section_id for t in batch],
            )

            for task in batch:
                result = self._patch(content, task)
                success = result.success and self._verify_patch(content, result, task)
                state = state.record_patch(task.section_id, success, result.tokens_used)
                self._record_cost("patcher", result.tokens_used, iteration)

                if success:
                    content = result.patched_content
                    patched_sections.append(task.section_id)
                    self.console.print(
                        f"  [green]✓ {task.section_title}[/green] "
                        f"[dim]({task.action.value}, {result.tokens_used} tokens)[/dim]"
                    )
                else:
                    self.console.print(
                        f"  [red]✗ {task.section_title}[/red] "
                        f"[dim]{result.error_message or 'patch rejected'}[/dim]"
                    )

                self._emit(
                    EVENT_TASK_COMPLETED,
                    iteration,
                    section_id=task.section_id,
                    success=success,
                    tokens_used=result.tokens_used,
                )

        return content, state, patched_sections

    def _available_tasks(
        self, plan: RefinementPlan, state: RefinementState
    ) -> list[SectionRefinementTask]:
        return [t for t in plan.tasks if t.section_id not in state.locked_sections]

    def _verify_patch(self, content: str, result: PatchResult, task: SectionRefinementTask) -> bool:
        """Reject a patch that breaks readability limits the original met."""
        if not self.config.check_readability:
            return True

        limits = self.settings.readability
        before = validate_readability(calculate_universal_readability(content), limits)
        after = validate_readability(calculate_universal_readability(result.patched_content), limits)
        if before.passed and not after.passed:
            logger.warning(
                f"Patch for {task.section_id} rejected: {'; '.join(after.issues)}"
            )
            return False
        return True

    def _check_regressions(
        self,
        state: RefinementState,
        criteria: dict[str, float],
        patched_sections: list[str],
        iteration: int,
    ) -> RefinementState:
        """Lock sections whose patches regressed a locked criterion."""
        regressed = []
        for section_id in patched_sections:
            check = check_quality_locks(
                state.quality_locks, criteria, section_id, self.settings.regression_tolerance
            )
            if check.passed:
                continue
            regressed.append(section_id)
            self._emit(
                EVENT_QUALITY_LOCK_TRIGGERED,
                iteration,
                section_id=section_id,
                violations=[v.to_dict() for v in check.violations],
            )

        for section_id in regressed:
            if section_id not in state.locked_sections:
                self._emit(EVENT_SECTION_LOCKED, iteration, section_id=section_id, reason="regression")
        return state.lock_sections(regressed)

    def _check_oscillation(
        self,
        state: RefinementState,
        new_score: float,
        patched_sections: list[str],
        iteration: int,
    ) -> RefinementState:
        """Lock sections edited in a cycle that undid the previous improvement."""
        oscillation = detect_score_oscillation(
            state.score_history + (new_score,), self.settings.oscillation_tolerance
        )
        if not oscillation.detected:
            return state

        logger.warning(
            f"Score oscillation: {oscillation.previous_score:.2f} -> "
            f"{oscillation.improved_score:.2f} -> {new_score:.2f}"
        )
        for section_id in patched_sections:
            if section_id not in state.locked_sections:
                self._emit(EVENT_SECTION_LOCKED, iteration, section_id=section_id, reason="oscillation")
        return state.lock_sections(patched_sections)

    def _apply_section_locks(
        self, state: RefinementState, decision: IterationDecision
    ) -> RefinementState:
        for section_id in decision.newly_locked_sections:
            if section_id not in state.locked_sections:
                self._emit(
                    EVENT_SECTION_LOCKED, state.iteration, section_id=section_id, reason="edit_limit"
                )
        return state.lock_sections(decision.newly_locked_sections)

    def _budget_exhausted(self, state: RefinementState) -> bool:
        return (
            state.tokens_used >= self.settings.max_tokens
            or state.elapsed_ms() >= self.settings.timeout_ms
        )

    def _check_budget(self, state: RefinementState, iteration: int) -> None:
        if self._budget_warned:
            return
        if state.tokens_used >= self.settings.max_tokens * BUDGET_WARNING_RATIO:
            self._budget_warned = True
            logger.warning(f"Token usage {state.tokens_used} near budget {self.settings.max_tokens}")
            self._emit(
                EVENT_BUDGET_WARNING,
                iteration,
                tokens_used=state.tokens_used,
                max_tokens=self.settings.max_tokens,
            )

    def _finish(
        self,
        content: str,
        score: float,
        state: RefinementState,
        decision: IterationDecision,
        started: float,
    ) -> RefinementLoopResult:
        """Build the result once the controller has stopped the loop."""
        history = list(self.tracker.history)
        latest = history[-1]
        best_effort = None

        if decision.reason is StopReason.SCORE_THRESHOLD_MET:
            status = RefinementStatus.ACCEPTED
            hints: list[str] = []
            self.console.print(
                f"\n[green]✅ Accept threshold met at iteration {state.iteration} ({score:.1%})[/green]"
            )
        else:
            self.console.print(
                f"\n[yellow]⚠️ Stopped: {decision.reason.value}, selecting best iteration...[/yellow]"
            )
            best_effort = select_best_iteration(
                history, latest.remaining_issues, self.mode, self.settings
            )
            content = best_effort.best_result.content
            score = best_effort.best_result.best_score
            status = best_effort.final_status
            hints = best_effort.best_result.improvement_hints
            self.console.print(f"[yellow]{best_effort.selection_reason}[/yellow]")

            if status is RefinementStatus.ESCALATED:
                self._emit(
                    EVENT_ESCALATION_TRIGGERED,
                    state.iteration,
                    score=score,
                    reason=best_effort.selection_reason,
                    improvement_hints=hints,
                )

        duration_ms = (time.monotonic() - started) * 1000
        self._emit(
            EVENT_REFINEMENT_COMPLETE,
            state.iteration,
            status=status.value,
            final_score=score,
            stop_reason=decision.reason.value,
            tokens_used=state.tokens_used,
        )

        return RefinementLoopResult(
            content=content,
            status=status,
            final_score=score,
            iteration_count=state.iteration,
            tokens_used=state.tokens_used,
            duration_ms=duration_ms,
            stop_reason=decision.reason,
            history=history,
            best_effort=best_effort,
            improvement_hints=hints,
            locked_sections=sorted(state.locked_sections),
            escalation_recommended=decision.escalation_recommended,
            cost=self.ledger.to_dict() if self.ledger else None,
        )

    def _patch(self, content: str, task: SectionRefinementTask) -> PatchResult:
        result = self._retrying.copy()(self.patch_fn, content, task)
        return result if isinstance(result, PatchResult) else PatchResult.model_validate(result)

    def _judge(self, content: str) -> list[JudgeVerdict]:
        verdicts = self._retrying.copy()(self.judge_fn, content)
        return [
            v if isinstance(v, JudgeVerdict) else JudgeVerdict.model_validate(v) for v in verdicts
        ]

    def _record_cost(self, step_name: str, tokens: int, iteration: int) -> None:
        # Collaborators report a single token total; price it at the output rate
        if self.ledger is not None and tokens:
            self.ledger.record(step_name, self.config.cost_model, 0, tokens, iteration)

    def _record_judge_cost(self, verdicts: list[JudgeVerdict], iteration: int) -> None:
        self._record_cost("judge", sum(v.tokens_used for v in verdicts), iteration)

    def _emit_arbiter(self, arbiter: ArbiterOutput, iteration: int) -> None:
        self._emit(
            EVENT_ARBITER_COMPLETE,
            iteration,
            agreement_score=arbiter.agreement_score,
            agreement_level=arbiter.agreement_level.value,
            accepted_issues=len(arbiter.accepted_issues),
            rejected_issues=len(arbiter.rejected_issues),
            tasks=len(arbiter.plan.tasks),
            estimated_tokens=arbiter.plan.estimated_tokens,
        )

    def _emit(self, event_type: str, iteration: int, **data) -> None:
        """Call event callback if available."""
        if not self.event_callback:
            return
        try:
            self.event_callback({"type": event_type, "iteration": iteration, **data})
        except Exception as e:
            logger.warning(f"Event callback failed for {event_type}: {e}")

    def _display_header(self) -> None:
        """Display loop header with configuration."""
        thresholds = self.settings.mode(self.mode)
        self.console.print(
            f"\n[bold magenta]═══ STEP {self.config.step_number}: {self.config.step_name} ═══[/bold magenta]\n"
        )
        self.console.print(f"[blue]Mode: {self.mode.value}[/blue]")
        self.console.print(f"[blue]Accept threshold: {thresholds.accept_threshold:.0%}[/blue]")
        self.console.print(
            f"[blue]Max iterations: {self.settings.max_iterations} · "
            f"Token budget: {self.settings.max_tokens}[/blue]"
        )

    def _display_scores(self, score: float, criteria: dict[str, float], iteration: int) -> None:
        """Display scores for the current iteration."""
        self.console.print(f"\n[bold]Quality Scores (Iteration {iteration}):[/bold]")
        for name, value in criteria.items():
            self.console.print(f"  {name.replace('_', ' ').title():<30} {value:.1%}")
        self.console.print(f"  [bold]{'Overall':<30} {score:.1%}[/bold]")

        if iteration > 0:
            previous = self.tracker.get_iteration(iteration - 1)
            if previous:
                delta = score - previous.score
                if delta > 0:
                    symbol, color = "↑", "green"
                elif delta < 0:
                    symbol, color = "↓", "red"
                else:
                    symbol, color = "→", "yellow"
                self.console.print(
                    f"  [{color}]Improvement: {symbol} {delta:+.3f} (prev: {previous.score:.1%})[/{color}]"
                )
