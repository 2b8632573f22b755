"""
Unit tests for the refinement data model and configuration.

Tests cover:
- JudgeIssue / JudgeVerdict / PatchResult boundary validation
- IterationResult serialization
- RefinementState immutable transitions
- RefinementSettings and mode thresholds
"""

from dataclasses import replace

import pytest
from pydantic import ValidationError

from refinement_engine.config import (
    FULL_AUTO_SETTINGS,
    SEMI_AUTO_SETTINGS,
    TOKEN_COSTS,
    OperationMode,
    RefinementSettings,
)
from refinement_engine.errors import InvalidTokenCountError
from refinement_engine.models import (
    Criterion,
    IterationResult,
    JudgeIssue,
    JudgeVerdict,
    PatchResult,
    RefinementState,
    Severity,
)


class TestJudgeIssue:
    """Tests for the JudgeIssue boundary model."""

    def test_accepts_camel_case_payload(self):
        """Test that camelCase keys from collaborators are accepted."""
        issue = JudgeIssue.model_validate(
            {
                "criterion": "factual_accuracy",
                "severity": "critical",
                "location": "Section 2",
                "description": "Wrong date",
                "suggestedFix": "Use 1648",
                "quotedText": "signed in 1748",
            }
        )

        assert issue.criterion is Criterion.FACTUAL_ACCURACY
        assert issue.severity is Severity.CRITICAL
        assert issue.suggested_fix == "Use 1648"
        assert issue.quoted_text == "signed in 1748"

    def test_rejects_unknown_criterion(self):
        """Test that criteria outside the rubric fail validation."""
        with pytest.raises(ValidationError):
            JudgeIssue(criterion="tone", severity="minor", location="x", description="y")

    def test_rejects_unknown_severity(self):
        """Test that unknown severities fail validation."""
        with pytest.raises(ValidationError):
            JudgeIssue(
                criterion="completeness", severity="blocker", location="x", description="y"
            )

    def test_severity_rank(self):
        """Test severity ordering critical > major > minor."""
        assert Severity.CRITICAL.rank > Severity.MAJOR.rank > Severity.MINOR.rank

    def test_criterion_label(self):
        """Test human-readable criterion names."""
        assert Criterion.LEARNING_OBJECTIVE_ALIGNMENT.label == "learning objective alignment"


class TestJudgeVerdict:
    """Tests for the JudgeVerdict boundary model."""

    def test_valid_verdict(self, make_scores):
        """Test a complete verdict."""
        verdict = JudgeVerdict(criteria_scores=make_scores(0.8), overall_score=0.8)

        assert verdict.criteria_scores["factual_accuracy"] == 0.8
        assert verdict.issues == []
        assert verdict.tokens_used == 0

    def test_scores_out_of_range(self, make_scores):
        """Test that criterion scores must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            JudgeVerdict(criteria_scores=make_scores(0.8, completeness=1.2))

    def test_unknown_criterion(self):
        """Test that verdicts cannot extend the criterion set."""
        with pytest.raises(ValidationError):
            JudgeVerdict(criteria_scores={"tone": 0.5})

    def test_extra_fields_forbidden(self, make_scores):
        """Test that unexpected payload keys are rejected."""
        with pytest.raises(ValidationError):
            JudgeVerdict.model_validate(
                {"criteriaScores": make_scores(0.8), "rawOutput": "free text"}
            )

    def test_negative_tokens(self, make_scores):
        """Test that token usage cannot be negative."""
        with pytest.raises(ValidationError):
            JudgeVerdict(criteria_scores=make_scores(0.8), tokens_used=-1)


class TestPatchResult:
    """Tests for the PatchResult boundary model."""

    def test_camel_case_payload(self):
        """Test a patch executor payload."""
        result = PatchResult.model_validate(
            {"patchedContent": "new text", "success": False, "tokensUsed": 640, "errorMessage": "timeout"}
        )

        assert result.patched_content == "new text"
        assert result.success is False
        assert result.tokens_used == 640
        assert result.error_message == "timeout"


class TestIterationResult:
    """Tests for the IterationResult record."""

    def test_frozen(self):
        """Test that iteration records cannot be modified."""
        result = IterationResult(iteration=0, score=0.7, content="text")
        with pytest.raises(AttributeError):
            result.score = 0.9

    def test_to_dict(self, make_issue):
        """Test serialization including remaining issues."""
        result = IterationResult(
            iteration=1,
            score=0.8,
            content="text",
            remaining_issues=(make_issue(),),
            criteria_scores={"completeness": 0.7},
        )

        d = result.to_dict()

        assert d["iteration"] == 1
        assert d["remaining_issues"][0]["criterion"] == "clarity_readability"
        assert d["criteria_scores"] == {"completeness": 0.7}


class TestRefinementState:
    """Tests for RefinementState transitions."""

    def test_start(self):
        """Test the initial snapshot of a session."""
        state = RefinementState.start(0.72, ["sec_1", "sec_2"], {"factual_accuracy": 0.9}, 5000.0)

        assert state.iteration == 0
        assert state.score_history == (0.72,)
        assert state.section_edit_count == {"sec_1": 0, "sec_2": 0}
        assert state.start_time_ms == 5000.0
        assert state.quality_locks == {"factual_accuracy": 0.9}

    def test_successful_patch_advances_edit_count(self):
        """Test that a successful patch counts as an edit."""
        state = RefinementState.start(0.7, ["sec_1"])

        new_state = state.record_patch("sec_1", success=True, tokens_used=800)

        assert new_state.section_edit_count == {"sec_1": 1}
        assert new_state.tokens_used == 800
        assert state.section_edit_count == {"sec_1": 0}
        assert state.tokens_used == 0

    def test_failed_patch_only_counts_tokens(self):
        """Test that a failed patch does not advance the edit count."""
        state = RefinementState.start(0.7, ["sec_1"])

        new_state = state.record_patch("sec_1", success=False, tokens_used=300)

        assert new_state.section_edit_count == {"sec_1": 0}
        assert new_state.tokens_used == 300

    def test_record_iteration(self):
        """Test that history length stays iteration + 1."""
        state = RefinementState.start(0.7, []).record_iteration(0.75).record_iteration(0.8)

        assert state.iteration == 2
        assert state.score_history == (0.7, 0.75, 0.8)
        assert len(state.score_history) == state.iteration + 1

    def test_lock_and_track_sections(self):
        """Test locking and tracking sections returns new snapshots."""
        state = RefinementState.start(0.7, ["sec_1"])

        locked = state.lock_sections(["sec_1"])
        tracked = locked.track_sections(["sec_1", "sec_3"])

        assert state.locked_sections == frozenset()
        assert locked.locked_sections == frozenset({"sec_1"})
        assert tracked.section_edit_count == {"sec_1": 0, "sec_3": 0}
        assert tracked.all_sections == {"sec_1", "sec_3"}

    def test_negative_tokens_rejected(self):
        """Test that token usage never decreases."""
        with pytest.raises(InvalidTokenCountError) as exc_info:
            RefinementState.start(0.7, []).add_tokens(-5)
        assert exc_info.value.type == "total"

    def test_elapsed(self):
        """Test elapsed time against an explicit clock."""
        state = RefinementState.start(0.7, [], start_time_ms=1000.0)
        assert state.elapsed_ms(now_ms=4000.0) == 3000.0


class TestRefinementSettings:
    """Tests for RefinementSettings and mode thresholds."""

    def test_defaults(self):
        """Test default limits."""
        settings = RefinementSettings()

        assert settings.max_iterations == 3
        assert settings.max_tokens == 15000
        assert settings.timeout_ms == 300000
        assert settings.regression_tolerance == 0.05
        assert settings.section_lock_after_edits == 2
        assert settings.convergence_threshold == 0.02

    def test_mode_thresholds(self):
        """Test per-mode accept and good-enough thresholds."""
        settings = RefinementSettings()

        assert settings.mode(OperationMode.FULL_AUTO) == FULL_AUTO_SETTINGS
        assert settings.mode("semi-auto") == SEMI_AUTO_SETTINGS
        assert FULL_AUTO_SETTINGS.accept_threshold == 0.85
        assert SEMI_AUTO_SETTINGS.accept_threshold == 0.90
        assert SEMI_AUTO_SETTINGS.escalation_enabled is True
        assert FULL_AUTO_SETTINGS.escalation_enabled is False

    def test_unknown_mode(self):
        """Test that unknown modes raise ValueError."""
        with pytest.raises(ValueError):
            RefinementSettings().mode("manual")

    def test_override(self):
        """Test per-session overrides with dataclasses.replace()."""
        settings = replace(RefinementSettings(), max_iterations=5)
        assert settings.max_iterations == 5

    def test_token_cost_midpoints(self):
        """Test token cost midpoints used for plan estimates."""
        assert TOKEN_COSTS["patcher"].midpoint == 750
        assert TOKEN_COSTS["section_expander"].midpoint == 1600
        assert TOKEN_COSTS["delta_judge"].midpoint == 200
