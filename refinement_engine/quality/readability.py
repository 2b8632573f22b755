"""
Language-agnostic readability metrics for delta verification.

After a targeted patch, the patched section is checked for readability
regressions before it is re-judged. The metrics rely only on whitespace,
sentence punctuation and blank lines, so they work for any script
(Latin, Cyrillic, ...).

Public API:
    - calculate_universal_readability(): Compute metrics for a text
    - validate_readability(): Check metrics against ReadabilityLimits
"""

import re
from dataclasses import dataclass, field

from ..config import ReadabilityLimits

_SENTENCE_END = re.compile(r"[.!?]+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class ReadabilityMetrics:
    """
    Readability metrics of a text.

    Attributes:
        avg_sentence_length: Words per sentence
        avg_word_length: Characters per word
        paragraph_break_ratio: Paragraphs per sentence
    """

    avg_sentence_length: float = 0.0
    avg_word_length: float = 0.0
    paragraph_break_ratio: float = 0.0


@dataclass(frozen=True)
class ReadabilityCheck:
    """Result of validating readability metrics."""

    passed: bool
    issues: list[str] = field(default_factory=list)


def calculate_universal_readability(text: str) -> ReadabilityMetrics:
    """
    Calculate readability metrics without language-specific rules.

    Args:
        text: Plain or markdown text

    Returns:
        ReadabilityMetrics (all zeros for empty text)

    Example:
        >>> m = calculate_universal_readability("Sentence one. Sentence two.")
        >>> m.avg_sentence_length
        2.0
    """
    words = text.split()
    sentences = [s for s in _SENTENCE_END.split(text) if s.strip()]
    paragraphs = [p for p in _PARAGRAPH_BREAK.split(text) if p.strip()]

    if not words or not sentences:
        return ReadabilityMetrics()

    return ReadabilityMetrics(
        avg_sentence_length=len(words) / len(sentences),
        avg_word_length=sum(len(word) for word in words) / len(words),
        paragraph_break_ratio=len(paragraphs) / len(sentences),
    )


def validate_readability(
    metrics: ReadabilityMetrics, limits: ReadabilityLimits | None = None
) -> ReadabilityCheck:
    """
    Check readability metrics against limits. Values exactly at a limit pass.

    Args:
        metrics: Metrics from calculate_universal_readability()
        limits: Optional custom limits (uses ReadabilityLimits() if None)

    Returns:
        ReadabilityCheck with one issue message per failed limit
    """
    if limits is None:
        limits = ReadabilityLimits()

    issues = []
    if metrics.avg_sentence_length > limits.max_sentence_length:
        issues.append(
            f"Average sentence length {metrics.avg_sentence_length:.1f} "
            f"exceeds maximum {limits.max_sentence_length:g}"
        )
    if metrics.avg_word_length > limits.max_word_length:
        issues.append(
            f"Average word length {metrics.avg_word_length:.1f} "
            f"exceeds maximum {limits.max_word_length:g}"
        )
    if metrics.paragraph_break_ratio < limits.min_paragraph_break_ratio:
        issues.append(
            f"Paragraph break ratio {metrics.paragraph_break_ratio:.2f} "
            f"below minimum {limits.min_paragraph_break_ratio:g}"
        )

    return ReadabilityCheck(passed=not issues, issues=issues)
