"""
Iterative refinement loop module.

This module provides the iteration controller (stop conditions, convergence,
section locking), best-effort selection, iteration history tracking, and the
RefinementLoopRunner that drives a targeted-refinement session.

Public API:
    - StopReason: Enum of iteration decisions
    - IterationDecision: Decision returned by should_continue_iteration()
    - should_continue_iteration(): Decide whether to run another cycle
    - stop_decision(): Stop decision with escalation advice
    - detect_convergence(): Score plateau detection
    - detect_score_oscillation(): Improvement-then-regression detection
    - update_section_locks(): Sections at their edit limit
    - select_best_iteration(): Best-effort selection from history
    - generate_improvement_hints(): Render unresolved issues for humans
    - IterationTracker: Append-only iteration history
    - RefinementLoopConfig / RefinementLoopResult / RefinementLoopRunner
"""

from .best_effort import (
    BestEffortResult,
    BestEffortSelection,
    generate_improvement_hints,
    select_best_iteration,
)
from .iteration_controller import (
    IterationDecision,
    OscillationResult,
    StopReason,
    detect_convergence,
    detect_score_oscillation,
    should_continue_iteration,
    stop_decision,
    update_section_locks,
)
from .iteration_tracker import IterationTracker
from .loop_runner import RefinementLoopConfig, RefinementLoopResult, RefinementLoopRunner

__all__ = [
    # Iteration control
    "IterationDecision",
    "OscillationResult",
    "StopReason",
    "should_continue_iteration",
    "stop_decision",
    "detect_convergence",
    "detect_score_oscillation",
    "update_section_locks",
    # Best-effort selection
    "BestEffortResult",
    "BestEffortSelection",
    "select_best_iteration",
    "generate_improvement_hints",
    # Iteration tracking
    "IterationTracker",
    # Loop runner
    "RefinementLoopConfig",
    "RefinementLoopResult",
    "RefinementLoopRunner",
]
