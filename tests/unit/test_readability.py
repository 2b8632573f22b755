"""
Unit tests for language-agnostic readability checks.

Tests cover:
- calculate_universal_readability() on varied scripts and punctuation
- validate_readability() limits, boundaries and messages
"""

import pytest

from refinement_engine.config import ReadabilityLimits
from refinement_engine.quality import (
    ReadabilityMetrics,
    calculate_universal_readability,
    validate_readability,
)


class TestCalculateUniversalReadability:
    """Tests for calculate_universal_readability()."""

    def test_empty_text(self):
        """Test that empty text yields zero metrics."""
        metrics = calculate_universal_readability("")

        assert metrics.avg_sentence_length == 0
        assert metrics.avg_word_length == 0
        assert metrics.paragraph_break_ratio == 0

    def test_single_sentence(self):
        """Test a single sentence paragraph."""
        metrics = calculate_universal_readability(
            "This is a single sentence with eight words total."
        )

        assert metrics.avg_sentence_length == 9
        assert metrics.paragraph_break_ratio == 1

    def test_cyrillic_text(self):
        """Test that non-Latin scripts are measured the same way."""
        metrics = calculate_universal_readability(
            "Это первое предложение. Это второе предложение. Это третье предложение."
        )

        assert metrics.avg_sentence_length == pytest.approx(3)
        assert metrics.avg_word_length > 0

    def test_mixed_punctuation(self):
        """Test periods, question marks and exclamation marks as sentence ends."""
        metrics = calculate_universal_readability(
            "First sentence. Is this a question? This is exciting!"
        )
        assert metrics.avg_sentence_length == pytest.approx(3)

    def test_paragraph_ratio(self):
        """Test paragraphs per sentence with and without blank lines."""
        flat = calculate_universal_readability("Sentence one. Sentence two. Sentence three.")
        split = calculate_universal_readability("Sentence one.\n\nSentence two.\n\nSentence three.")

        assert flat.paragraph_break_ratio == pytest.approx(1 / 3)
        assert split.paragraph_break_ratio == pytest.approx(1.0)

    def test_long_compound_words(self):
        """Test that long words raise the average word length."""
        metrics = calculate_universal_readability(
            "Donaudampfschifffahrtsgesellschaft ist ein deutsches Wort."
        )
        assert metrics.avg_word_length > 5


class TestValidateReadability:
    """Tests for validate_readability()."""

    def test_valid_metrics_pass(self):
        """Test metrics well within limits."""
        result = validate_readability(ReadabilityMetrics(17, 6, 0.12))

        assert result.passed is True
        assert result.issues == []

    def test_long_sentences(self):
        """Test that long sentences are reported with value and limit."""
        result = validate_readability(ReadabilityMetrics(30, 6, 0.10))

        assert result.passed is False
        assert len(result.issues) == 1
        assert "Average sentence length" in result.issues[0]
        assert "30" in result.issues[0]
        assert "25" in result.issues[0]

    def test_long_words(self):
        """Test that long words are reported with value and limit."""
        result = validate_readability(ReadabilityMetrics(17, 12, 0.10))

        assert result.passed is False
        assert "Average word length" in result.issues[0]
        assert "12" in result.issues[0]
        assert "10" in result.issues[0]

    def test_few_paragraphs(self):
        """Test that a low paragraph break ratio is reported."""
        result = validate_readability(ReadabilityMetrics(17, 6, 0.05))

        assert result.passed is False
        assert "Paragraph break ratio" in result.issues[0]
        assert "0.05" in result.issues[0]
        assert "0.08" in result.issues[0]

    def test_multiple_issues(self):
        """Test that every failed limit produces one issue."""
        result = validate_readability(ReadabilityMetrics(30, 12, 0.05))
        assert len(result.issues) == 3

    def test_exact_limits_pass(self):
        """Test that values exactly at the limits pass."""
        result = validate_readability(ReadabilityMetrics(25, 10, 0.08))
        assert result.passed is True

    def test_custom_limits(self):
        """Test validation against custom limits."""
        limits = ReadabilityLimits(max_sentence_length=15)
        result = validate_readability(ReadabilityMetrics(17, 6, 0.12), limits)
        assert result.passed is False
