"""Progressive fallback compression for a single oversized content block.

The ladder, least destructive first:

1. truncate: head + tail, middle dropped
2. remove_middle: same, but 70% head / 30% tail
3. extract_key: keep the highest-signal sentences
4. aggressive_truncate: hard cut plus a notice; always succeeds

``apply_progressive_fallback`` returns the first rung whose output fits the
target (within a safety margin), else the rung-4 result. No rung returns
more tokens than it was given, and nothing here raises.
"""

from __future__ import annotations

import logging
import re

from .tokens import TokenEstimator, chars_for_tokens, estimate_tokens
from .types import CompressionResult, CompressionStrategy, compression_ratio

log = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 1.1

TRUNCATE_MARKER = "\n...truncated...\n"
REMOVE_MARKER = "\n...removed...\n"
EXTRACT_NOTICE = "[key points extracted]"
AGGRESSIVE_NOTICE = "\n[content truncated]"

REMOVE_MIDDLE_HEAD_RATIO = 0.7
# Truncation always keeps at least this much of each end.
_MIN_EDGE_CHARS = 16

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_KEY_TERMS_RE = re.compile(
    r"\b(?:errors?|bugs?|fix(?:ed|es)?|todo|fixme|fail(?:ed|s|ure)?|exceptions?|"
    r"warnings?|important|must|crash(?:ed|es)?|broken|issues?|regression)\b",
    re.IGNORECASE,
)

_CODE_INDICATORS = [
    re.compile(r"`[^`\n]+`"),                          # backticked identifiers
    re.compile(r"\b[A-Za-z_][\w.]*\("),                # function calls
    re.compile(r"(?:[\w.-]+/)+[\w.-]+\.\w+"),          # file paths
    re.compile(r"\b\w+\.(?:py|ts|js|tsx|go|rs|java|rb|md|json|ya?ml|toml)\b"),
]


def _result(
    content: str,
    original: str,
    original_tokens: int,
    strategy: CompressionStrategy,
    est: TokenEstimator,
) -> CompressionResult:
    tokens = est(content)
    if tokens > original_tokens:
        # The rung would grow the text; hand back the original untouched.
        content, tokens = original, original_tokens
    return CompressionResult(
        content=content,
        token_count=tokens,
        original_tokens=original_tokens,
        compression_ratio=compression_ratio(tokens, original_tokens),
        strategy=strategy,
    )


def _keep_ends(content: str, budget: int, head_ratio: float, marker: str, min_edge: int) -> str:
    keep = max(0, budget - len(marker))
    head = max(int(keep * head_ratio), min_edge)
    tail = max(keep - int(keep * head_ratio), min_edge)
    if head + tail >= len(content):
        return content
    tail_text = content[-tail:] if tail else ""
    return f"{content[:head]}{marker}{tail_text}"


def apply_truncation(
    content: str,
    target_tokens: int,
    *,
    estimate: TokenEstimator | None = None,
) -> CompressionResult:
    """Keep an equal head and tail, drop the middle behind ``...truncated...``.

    The literal start and end of the content always survive.
    """
    est = estimate or estimate_tokens
    original_tokens = est(content)
    budget = chars_for_tokens(content, max(0, target_tokens), est)
    truncated = _keep_ends(content, budget, 0.5, TRUNCATE_MARKER, _MIN_EDGE_CHARS)
    return _result(truncated, content, original_tokens, CompressionStrategy.TRUNCATE, est)


def remove_middle(
    content: str,
    target_tokens: int,
    *,
    estimate: TokenEstimator | None = None,
) -> CompressionResult:
    """Drop the middle, keeping 70% of the budget from the head and 30% from the tail."""
    est = estimate or estimate_tokens
    original_tokens = est(content)
    budget = chars_for_tokens(content, max(0, target_tokens), est)
    trimmed = _keep_ends(content, budget, REMOVE_MIDDLE_HEAD_RATIO, REMOVE_MARKER, 0)
    return _result(trimmed, content, original_tokens, CompressionStrategy.REMOVE_MIDDLE, est)


def score_sentence(sentence: str) -> int:
    """Key-information score: problem vocabulary counts double, code indicators once."""
    score = 2 * len(_KEY_TERMS_RE.findall(sentence))
    score += sum(1 for p in _CODE_INDICATORS if p.search(sentence))
    return score


def split_sentences(content: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(content) if s and s.strip()]


def extract_key_info(
    content: str,
    target_tokens: int,
    *,
    estimate: TokenEstimator | None = None,
) -> CompressionResult:
    """Keep the highest-scoring sentences, in original order, within the budget.

    With no scoring sentence (or none that fits) there is nothing worth
    extracting, so this returns the ``aggressive_truncate`` result instead.
    """
    est = estimate or estimate_tokens
    original_tokens = est(content)
    budget = chars_for_tokens(content, max(0, target_tokens), est) - len(EXTRACT_NOTICE) - 1

    scored: list[tuple[int, int, str]] = []
    for pos, sentence in enumerate(split_sentences(content)):
        score = score_sentence(sentence)
        if score > 0:
            scored.append((score, pos, sentence))
    if not scored:
        log.debug("No key sentences in %d chars, falling through", len(content))
        return aggressive_truncate(content, target_tokens, estimate=est)

    chosen: list[tuple[int, str]] = []
    used = 0
    for _score, pos, sentence in sorted(scored, key=lambda item: (-item[0], item[1])):
        cost = len(sentence) + 1
        if used + cost > budget:
            continue
        chosen.append((pos, sentence))
        used += cost

    if not chosen:
        log.debug("Key sentences exceed %d-char budget, falling through", budget)
        return aggressive_truncate(content, target_tokens, estimate=est)

    chosen.sort()
    extracted = EXTRACT_NOTICE + "\n" + "\n".join(s for _pos, s in chosen)
    return _result(extracted, content, original_tokens, CompressionStrategy.EXTRACT_KEY, est)


def aggressive_truncate(
    content: str,
    target_tokens: int,
    *,
    estimate: TokenEstimator | None = None,
) -> CompressionResult:
    """Hard cut to the budget with a ``[content truncated]`` notice. The ladder's floor."""
    est = estimate or estimate_tokens
    original_tokens = est(content)
    budget = max(0, chars_for_tokens(content, max(0, target_tokens), est) - len(AGGRESSIVE_NOTICE))
    cut = content[:budget].rstrip() + AGGRESSIVE_NOTICE
    return _result(cut, content, original_tokens, CompressionStrategy.AGGRESSIVE_TRUNCATE, est)


_LADDER = (apply_truncation, remove_middle, extract_key_info)


def apply_progressive_fallback(
    content: str,
    target_tokens: int,
    *,
    estimate: TokenEstimator | None = None,
    safety_margin: float = DEFAULT_SAFETY_MARGIN,
) -> CompressionResult:
    """Escalate through the ladder until the content fits ``target_tokens``."""
    est = estimate or estimate_tokens
    target = max(0, target_tokens)
    original_tokens = est(content)

    if original_tokens <= target:
        return CompressionResult(
            content=content,
            token_count=original_tokens,
            original_tokens=original_tokens,
            compression_ratio=0.0,
            strategy=CompressionStrategy.NONE,
        )

    limit = int(target * safety_margin)
    for rung in _LADDER:
        result = rung(content, target, estimate=est)
        if result.strategy == CompressionStrategy.AGGRESSIVE_TRUNCATE:
            return result
        if result.content != content and result.token_count <= limit:
            log.debug(
                "Compressed %d -> %d tokens via %s",
                original_tokens, result.token_count, result.strategy.value,
            )
            return result

    result = aggressive_truncate(content, target, estimate=est)
    log.debug(
        "Ladder exhausted: %d -> %d tokens (target %d)",
        original_tokens, result.token_count, target,
    )
    return result
