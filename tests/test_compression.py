"""Tests for the progressive fallback ladder."""

from __future__ import annotations

import pytest

from agent_context.context.compression import (
    AGGRESSIVE_NOTICE,
    EXTRACT_NOTICE,
    REMOVE_MARKER,
    TRUNCATE_MARKER,
    aggressive_truncate,
    apply_progressive_fallback,
    apply_truncation,
    extract_key_info,
    remove_middle,
    score_sentence,
    split_sentences,
)
from agent_context.context.tokens import estimate_tokens
from agent_context.context.types import CompressionStrategy

FILLER = "Nothing notable happened here. "


def _words(text: str) -> int:
    return len(text.split())


# -- Individual rungs --


def test_truncation_keeps_literal_start_and_end() -> None:
    content = "HEAD" + "x" * 5000 + "TAIL"
    result = apply_truncation(content, 100)
    assert result.strategy == CompressionStrategy.TRUNCATE
    assert result.content.startswith("HEAD")
    assert result.content.endswith("TAIL")
    assert TRUNCATE_MARKER in result.content
    assert result.token_count <= 110


def test_truncation_splits_budget_evenly() -> None:
    result = apply_truncation("A" * 1000 + "B" * 1000, 100)
    head, _, tail = result.content.partition(TRUNCATE_MARKER)
    assert set(head) == {"A"}
    assert set(tail) == {"B"}
    assert abs(len(head) - len(tail)) <= 1


def test_remove_middle_favours_the_head() -> None:
    result = remove_middle("H" * 1000 + "T" * 1000, 100)
    assert result.strategy == CompressionStrategy.REMOVE_MIDDLE
    head, marker, tail = result.content.partition(REMOVE_MARKER)
    assert marker
    assert set(head) == {"H"}
    assert set(tail) == {"T"}
    assert len(head) > 2 * len(tail)


def test_score_sentence_weights_problem_terms_double() -> None:
    assert score_sentence("The weather was pleasant.") == 0
    assert score_sentence("This is a bug.") == 2
    assert score_sentence("Fixed the bug in `parse_config()`.") >= 5


def test_split_sentences_on_punctuation_and_newlines() -> None:
    assert split_sentences("One. Two!\n\nThree?  Four") == ["One.", "Two!", "Three?", "Four"]


def test_extract_key_picks_high_signal_sentence() -> None:
    key = "Fixed the bug in `parse_config()`."
    content = FILLER * 40 + key + " " + FILLER * 40
    result = extract_key_info(content, 20)
    assert result.strategy == CompressionStrategy.EXTRACT_KEY
    assert result.content == f"{EXTRACT_NOTICE}\n{key}"
    assert "Nothing notable" not in result.content
    assert result.token_count <= 22


def test_extract_key_keeps_original_order() -> None:
    content = (
        "First error in the loader. " + FILLER * 20
        + "Second fix for main.py landed. " + FILLER * 20
    )
    result = extract_key_info(content, 60)
    lines = result.content.splitlines()
    assert lines[0] == EXTRACT_NOTICE
    assert lines[1:] == ["First error in the loader.", "Second fix for main.py landed."]


def test_extract_key_without_signal_falls_through() -> None:
    result = extract_key_info(FILLER * 50, 10)
    assert result.strategy == CompressionStrategy.AGGRESSIVE_TRUNCATE
    assert result.content.endswith(AGGRESSIVE_NOTICE)


def test_aggressive_truncate_appends_notice() -> None:
    result = aggressive_truncate("z" * 4000, 50)
    assert result.strategy == CompressionStrategy.AGGRESSIVE_TRUNCATE
    assert result.content.startswith("z")
    assert result.content.endswith("[content truncated]")
    assert result.token_count <= 50


def test_rung_never_grows_content() -> None:
    result = aggressive_truncate("hi", 0)
    assert result.content == "hi"
    assert result.token_count == result.original_tokens
    assert result.compression_ratio == 0.0


# -- Ladder --


def test_content_that_fits_is_untouched() -> None:
    result = apply_progressive_fallback("short message", 100)
    assert result.strategy == CompressionStrategy.NONE
    assert result.content == "short message"
    assert result.compression_ratio == 0.0
    assert result.tokens_saved == 0


def test_empty_content() -> None:
    result = apply_progressive_fallback("", 0)
    assert result.strategy == CompressionStrategy.NONE
    assert result.content == ""
    assert result.token_count == 0


def test_ladder_prefers_truncation() -> None:
    content = "HEAD" + "x" * 5000 + "TAIL"
    result = apply_progressive_fallback(content, 100)
    assert result.strategy == CompressionStrategy.TRUNCATE
    assert result.original_tokens == estimate_tokens(content)
    assert result.tokens_saved > 0


@pytest.mark.parametrize("target", [0, -50])
def test_zero_budget_ends_at_aggressive_truncate(target: int) -> None:
    result = apply_progressive_fallback("abc" * 100, target)
    assert result.strategy == CompressionStrategy.AGGRESSIVE_TRUNCATE
    assert "[content truncated]" in result.content
    assert result.token_count < result.original_tokens


@pytest.mark.parametrize("target", [1, 10, 50, 200, 900])
def test_output_never_exceeds_input(target: int) -> None:
    content = ("Fixed error in utils.py. " + FILLER * 3) * 30
    result = apply_progressive_fallback(content, target)
    assert result.token_count <= result.original_tokens
    assert 0.0 <= result.compression_ratio < 1.0
    assert result.token_count == estimate_tokens(result.content)


def test_injected_estimator_is_respected() -> None:
    content = " ".join(["word"] * 500)
    result = apply_progressive_fallback(content, 50, estimate=_words)
    assert result.original_tokens == 500
    assert result.strategy == CompressionStrategy.TRUNCATE
    assert result.token_count == _words(result.content)
    assert result.token_count <= 55


def test_safety_margin_accepts_slight_overshoot() -> None:
    content = "q" * 2000
    strict = apply_progressive_fallback(content, 100, safety_margin=1.0)
    assert strict.token_count <= 100
    loose = apply_progressive_fallback(content, 100, safety_margin=2.0)
    assert loose.strategy == CompressionStrategy.TRUNCATE
