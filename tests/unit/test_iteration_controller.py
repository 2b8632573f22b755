"""
Unit tests for the iteration controller.

Tests cover:
- should_continue_iteration() stop conditions and their order
- Escalation advice per operating mode
- Section locking and remaining task counts
- detect_convergence() / detect_score_oscillation() / update_section_locks()
"""

import pytest

from refinement_engine.config import OperationMode
from refinement_engine.iterative import (
    StopReason,
    detect_convergence,
    detect_score_oscillation,
    should_continue_iteration,
    stop_decision,
    update_section_locks,
)

START_MS = 1_000_000.0
NOW_MS = START_MS + 1_000


class TestShouldContinueIteration:
    """Tests for should_continue_iteration()."""

    def test_score_threshold_met_full_auto(self, make_state):
        """Test that reaching the accept threshold stops the loop."""
        decision = should_continue_iteration(make_state(), 0.86, OperationMode.FULL_AUTO, now_ms=NOW_MS)

        assert decision.should_continue is False
        assert decision.reason is StopReason.SCORE_THRESHOLD_MET
        assert decision.remaining_task_count == 0
        assert decision.escalation_recommended is False

    def test_semi_auto_needs_higher_score(self, make_state):
        """Test that semi-auto keeps refining below 0.90."""
        decision = should_continue_iteration(make_state(), 0.86, "semi-auto", now_ms=NOW_MS)

        assert decision.should_continue is True
        assert decision.reason is StopReason.CONTINUE
        assert decision.remaining_task_count == 2

    def test_threshold_inclusive(self, make_state):
        """Test that a score exactly at the threshold is accepted."""
        decision = should_continue_iteration(make_state(), 0.90, "semi-auto", now_ms=NOW_MS)
        assert decision.reason is StopReason.SCORE_THRESHOLD_MET

    def test_exact_accept_boundary_per_mode(self, make_state):
        """Test that 0.85 stops full-auto but continues semi-auto."""
        full_auto = should_continue_iteration(make_state(), 0.85, "full-auto", now_ms=NOW_MS)
        semi_auto = should_continue_iteration(make_state(), 0.85, "semi-auto", now_ms=NOW_MS)

        assert full_auto.should_continue is False
        assert full_auto.reason is StopReason.SCORE_THRESHOLD_MET
        assert semi_auto.should_continue is True
        assert semi_auto.reason is StopReason.CONTINUE

    def test_max_iterations(self, make_state):
        """Test that the iteration limit stops the loop."""
        state = make_state(iteration=3, score_history=(0.60, 0.65, 0.70, 0.75))

        decision = should_continue_iteration(state, 0.75, "full-auto", now_ms=NOW_MS)

        assert decision.should_continue is False
        assert decision.reason is StopReason.MAX_ITERATIONS

    def test_token_budget(self, make_state):
        """Test that the token budget stops the loop."""
        decision = should_continue_iteration(
            make_state(tokens_used=15_000), 0.75, "full-auto", now_ms=NOW_MS
        )
        assert decision.reason is StopReason.TOKEN_BUDGET

    def test_under_token_budget_continues(self, make_state):
        """Test that the loop continues just below the budget."""
        decision = should_continue_iteration(
            make_state(tokens_used=14_999), 0.75, "full-auto", now_ms=NOW_MS
        )
        assert decision.should_continue is True

    def test_timeout(self, make_state):
        """Test that exceeding the wall-clock budget stops the loop."""
        decision = should_continue_iteration(
            make_state(), 0.75, "full-auto", now_ms=START_MS + 301_000
        )
        assert decision.reason is StopReason.TIMEOUT

    def test_converged(self, make_state):
        """Test that a score plateau stops the loop."""
        state = make_state(iteration=2, score_history=(0.780, 0.790, 0.795))

        decision = should_continue_iteration(state, 0.795, "full-auto", now_ms=NOW_MS)

        assert decision.reason is StopReason.CONVERGED

    def test_all_sections_locked(self, make_state):
        """Test that the loop stops when no section can be edited."""
        state = make_state(section_edit_count={"sec_intro": 2, "sec_body": 2})

        decision = should_continue_iteration(state, 0.75, "full-auto", now_ms=NOW_MS)

        assert decision.reason is StopReason.ALL_SECTIONS_LOCKED
        assert sorted(decision.newly_locked_sections) == ["sec_body", "sec_intro"]

    def test_previously_locked_sections_count(self, make_state):
        """Test that earlier locks and new locks together lock everything."""
        state = make_state(
            section_edit_count={"sec_intro": 2, "sec_body": 1},
            locked_sections=frozenset({"sec_body"}),
        )

        decision = should_continue_iteration(state, 0.75, "full-auto", now_ms=NOW_MS)

        assert decision.reason is StopReason.ALL_SECTIONS_LOCKED

    def test_remaining_tasks_exclude_locked(self, make_state):
        """Test remaining count and newly locked sections while continuing."""
        state = make_state(section_edit_count={"sec_1": 0, "sec_2": 1, "sec_3": 2})

        decision = should_continue_iteration(state, 0.75, "full-auto", now_ms=NOW_MS)

        assert decision.should_continue is True
        assert decision.newly_locked_sections == ["sec_3"]
        assert decision.remaining_task_count == 2

    def test_score_checked_before_limits(self, make_state):
        """Test that the score threshold wins over every other stop condition."""
        state = make_state(iteration=3, tokens_used=20_000, score_history=(0.7, 0.8, 0.85, 0.9))

        decision = should_continue_iteration(state, 0.9, "full-auto", now_ms=START_MS + 999_999)

        assert decision.reason is StopReason.SCORE_THRESHOLD_MET

    def test_iterations_checked_before_tokens(self, make_state):
        """Test stop condition order for iteration and token limits."""
        state = make_state(iteration=3, tokens_used=20_000, score_history=(0.6, 0.6, 0.7, 0.7))

        decision = should_continue_iteration(state, 0.7, "full-auto", now_ms=NOW_MS)

        assert decision.reason is StopReason.MAX_ITERATIONS

    @pytest.mark.parametrize(
        "mode,score,expected",
        [
            ("semi-auto", 0.80, True),
            ("semi-auto", 0.87, False),
            ("full-auto", 0.60, False),
        ],
    )
    def test_escalation_advice(self, make_state, mode, score, expected):
        """Test that only semi-auto below good-enough recommends escalation."""
        state = make_state(iteration=3, score_history=(0.5, 0.6, 0.7, score))

        decision = should_continue_iteration(state, score, mode, now_ms=NOW_MS)

        assert decision.should_continue is False
        assert decision.escalation_recommended is expected

    def test_state_not_mutated(self, make_state):
        """Test that the decision leaves the snapshot untouched."""
        state = make_state(section_edit_count={"sec_1": 2})
        before = state.to_dict()

        should_continue_iteration(state, 0.75, "full-auto", now_ms=NOW_MS)

        assert state.to_dict() == before

    def test_decision_to_dict(self, make_state):
        """Test decision serialization."""
        d = should_continue_iteration(make_state(), 0.86, "full-auto", now_ms=NOW_MS).to_dict()
        assert d["reason"] == "stop_score_threshold_met"
        assert d["should_continue"] is False

    def test_stop_decision_escalation(self):
        """Test escalation advice on a stop built outside the controller."""
        semi_auto = stop_decision(StopReason.ALL_SECTIONS_LOCKED, ["sec_2"], 0.80, "semi-auto")
        full_auto = stop_decision(StopReason.ALL_SECTIONS_LOCKED, [], 0.60, "full-auto")

        assert semi_auto.should_continue is False
        assert semi_auto.newly_locked_sections == ["sec_2"]
        assert semi_auto.escalation_recommended is True
        assert full_auto.escalation_recommended is False


class TestDetectConvergence:
    """Tests for detect_convergence()."""

    def test_plateau(self):
        """Test that two small steps converge."""
        assert detect_convergence([0.70, 0.78, 0.79, 0.79]) is True

    def test_improving(self):
        """Test that steady improvement is not convergence."""
        assert detect_convergence([0.60, 0.70, 0.80]) is False

    def test_short_history(self):
        """Test that fewer than three scores never converge."""
        assert detect_convergence([0.80, 0.80]) is False

    def test_one_large_step(self):
        """Test that both deltas must be small."""
        assert detect_convergence([0.70, 0.71, 0.80]) is False

    def test_custom_threshold(self):
        """Test convergence with a wider threshold."""
        assert detect_convergence([0.70, 0.74, 0.78], threshold=0.05) is True


class TestDetectScoreOscillation:
    """Tests for detect_score_oscillation()."""

    def test_rise_then_drop(self):
        """Test an improvement immediately undone."""
        result = detect_score_oscillation([0.70, 0.80, 0.72])

        assert result.detected is True
        assert result.previous_score == 0.70
        assert result.improved_score == 0.80

    def test_steady_rise(self):
        """Test that a held improvement is not oscillation."""
        assert detect_score_oscillation([0.70, 0.80, 0.80]).detected is False

    def test_noise_within_tolerance(self):
        """Test that movements within tolerance are ignored."""
        assert detect_score_oscillation([0.700, 0.705, 0.690]).detected is False

    def test_short_history(self):
        """Test that two scores cannot oscillate."""
        assert detect_score_oscillation([0.7, 0.8]).detected is False


class TestUpdateSectionLocks:
    """Tests for update_section_locks()."""

    def test_edit_limit(self):
        """Test that sections at or above the limit are locked."""
        assert update_section_locks({"a": 2, "b": 1, "c": 3}, 2) == ["a", "c"]

    def test_no_edits(self):
        """Test that untouched sections stay unlocked."""
        assert update_section_locks({"a": 0}) == []
