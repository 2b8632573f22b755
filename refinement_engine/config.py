# Copyright (c) 2025 Tolboom Medical
# Licensed under Prosperity Public License 3.0.0
# Commercial use requires separate license - see LICENSE and COMMERCIAL_LICENSE.md

# config.py
"""
Configuration settings for the targeted-refinement loop.

Session limits, quality tolerances and agreement cut points can be overridden
via environment variables. Load settings from a .env file or set environment
variables directly. Every decision function also accepts an explicit
RefinementSettings instance, so callers can override per session with
dataclasses.replace().

Environment Variables:
    # Loop limits
    REFINEMENT_MAX_ITERATIONS: Maximum refinement cycles (default: 3)
    REFINEMENT_MAX_TOKENS: Token budget per session (default: 15000)
    REFINEMENT_TIMEOUT_MS: Wall-clock budget in milliseconds (default: 300000)

    # Quality controls
    REFINEMENT_REGRESSION_TOLERANCE: Allowed drop on a locked criterion (default: 0.05)
    REFINEMENT_QUALITY_LOCK_THRESHOLD: Score needed to lock a criterion (default: 0.75)
    REFINEMENT_SECTION_LOCK_AFTER_EDITS: Edits before a section is locked (default: 2)
    REFINEMENT_CONVERGENCE_THRESHOLD: Plateau detection delta (default: 0.02)
    REFINEMENT_OSCILLATION_TOLERANCE: Oscillation detection delta (default: 0.01)

    # Parallel patching
    REFINEMENT_MAX_CONCURRENT_PATCHERS: Sections per execution batch (default: 3)

Example .env file:
    REFINEMENT_MAX_ITERATIONS=4
    REFINEMENT_MAX_TOKENS=20000
    REFINEMENT_TIMEOUT_MS=600000

Usage:
    >>> from refinement_engine.config import refinement_settings, OperationMode
    >>> refinement_settings.mode(OperationMode.FULL_AUTO).accept_threshold
    0.85
"""

import os
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class OperationMode(str, Enum):
    """
    Operating modes for the refinement loop.

    Modes:
        FULL_AUTO: System decides autonomously, lower accept bar
        SEMI_AUTO: Higher accept bar, escalates to a human on failure
    """

    FULL_AUTO = "full-auto"
    SEMI_AUTO = "semi-auto"


@dataclass(frozen=True)
class ModeSettings:
    """
    Thresholds and disposition for one operating mode.

    Attributes:
        accept_threshold: Score at which the loop stops successfully
        good_enough_threshold: Lower bound of the "acceptable" quality band
        escalation_enabled: Whether below-standard results go to a human
        on_max_iterations: Disposition when limits are hit ("escalate" or "best_effort")
    """

    accept_threshold: float
    good_enough_threshold: float
    escalation_enabled: bool
    on_max_iterations: str


SEMI_AUTO_SETTINGS = ModeSettings(
    accept_threshold=0.90,
    good_enough_threshold=0.85,
    escalation_enabled=True,
    on_max_iterations="escalate",
)

FULL_AUTO_SETTINGS = ModeSettings(
    accept_threshold=0.85,
    good_enough_threshold=0.75,
    escalation_enabled=False,
    on_max_iterations="best_effort",
)


@dataclass(frozen=True)
class ReadabilityLimits:
    """
    Language-agnostic readability limits used by delta verification.

    Attributes:
        max_sentence_length: Maximum average words per sentence
        max_word_length: Maximum average characters per word
        min_paragraph_break_ratio: Minimum paragraphs per sentence
    """

    max_sentence_length: float = 25
    max_word_length: float = 10
    min_paragraph_break_ratio: float = 0.08


@dataclass(frozen=True)
class TokenCostRange:
    """Expected token usage range for one agent call."""

    min_tokens: int
    max_tokens: int

    @property
    def midpoint(self) -> int:
        return (self.min_tokens + self.max_tokens) // 2


# Typical token usage per agent call
TOKEN_COSTS = {
    "patcher": TokenCostRange(500, 1000),
    "section_expander": TokenCostRange(1200, 2000),
    "delta_judge": TokenCostRange(150, 250),
}


@dataclass(frozen=True)
class RefinementSettings:
    """
    Configuration for a targeted-refinement session.

    All settings can be overridden via environment variables or by passing
    a modified copy to the decision functions.

    Attributes:
        max_iterations: Maximum refinement cycles (default: 3)
        max_tokens: Token budget for the session (default: 15000)
        timeout_ms: Wall-clock budget in milliseconds (default: 300000)
        regression_tolerance: Allowed drop on a locked criterion (default: 0.05)
        quality_lock_threshold: Score at which a criterion is locked (default: 0.75)
        section_lock_after_edits: Edits before a section is locked (default: 2)
        convergence_threshold: Max step delta that counts as a plateau (default: 0.02)
        oscillation_tolerance: Min step delta that counts as a swing (default: 0.01)
        max_concurrent_patchers: Max sections patched per batch (default: 3)
        adjacent_section_gap: Index distance treated as adjacent (default: 1)
        high_agreement: Agreement score for the "high" level (default: 0.80)
        moderate_agreement: Agreement score for the "moderate" level (default: 0.67)
        max_hints: Improvement hints reported on best-effort results (default: 5)
        cost_ceiling: Hard ceiling for a single cost estimate (default: 1000)
        semi_auto: Thresholds for semi-auto mode
        full_auto: Thresholds for full-auto mode
        readability: Readability limits for delta verification
    """

    # Loop limits
    max_iterations: int = int(os.getenv("REFINEMENT_MAX_ITERATIONS", "3"))
    max_tokens: int = int(os.getenv("REFINEMENT_MAX_TOKENS", "15000"))
    timeout_ms: int = int(os.getenv("REFINEMENT_TIMEOUT_MS", "300000"))  # 5 minutes

    # Quality controls
    regression_tolerance: float = float(os.getenv("REFINEMENT_REGRESSION_TOLERANCE", "0.05"))
    quality_lock_threshold: float = float(os.getenv("REFINEMENT_QUALITY_LOCK_THRESHOLD", "0.75"))
    section_lock_after_edits: int = int(os.getenv("REFINEMENT_SECTION_LOCK_AFTER_EDITS", "2"))
    convergence_threshold: float = float(os.getenv("REFINEMENT_CONVERGENCE_THRESHOLD", "0.02"))
    oscillation_tolerance: float = float(os.getenv("REFINEMENT_OSCILLATION_TOLERANCE", "0.01"))

    # Parallel patching
    max_concurrent_patchers: int = int(os.getenv("REFINEMENT_MAX_CONCURRENT_PATCHERS", "3"))
    adjacent_section_gap: int = 1

    # Inter-judge agreement cut points
    high_agreement: float = 0.80
    moderate_agreement: float = 0.67

    max_hints: int = 5
    cost_ceiling: float = 1000.0

    semi_auto: ModeSettings = SEMI_AUTO_SETTINGS
    full_auto: ModeSettings = FULL_AUTO_SETTINGS
    readability: ReadabilityLimits = field(default_factory=ReadabilityLimits)

    def mode(self, operation_mode: OperationMode | str) -> ModeSettings:
        """
        Get thresholds for an operating mode.

        Args:
            operation_mode: OperationMode or its string value

        Returns:
            ModeSettings for the mode

        Raises:
            ValueError: If the mode is not recognized
        """
        operation_mode = OperationMode(operation_mode)
        if operation_mode is OperationMode.SEMI_AUTO:
            return self.semi_auto
        return self.full_auto


# Global settings instance
refinement_settings = RefinementSettings()
