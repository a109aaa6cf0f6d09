"""Token estimation seam. Callers inject their tokenizer; this is the rough default."""

from __future__ import annotations

import math
from typing import Iterable, Protocol

from .types import PrunableMessage

# Rough chars-per-token for estimation
CHARS_PER_TOKEN = 4


class TokenEstimator(Protocol):
    def __call__(self, text: str) -> int: ...


def estimate_tokens(text: str) -> int:
    """Rough token estimate for a string (ceil of chars/4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_messages(
    messages: Iterable[PrunableMessage],
    estimate: TokenEstimator | None = None,
) -> int:
    """Total estimated tokens across message contents."""
    est = estimate or estimate_tokens
    return sum(est(m.content) for m in messages)


def chars_for_tokens(
    content: str,
    target_tokens: int,
    estimate: TokenEstimator | None = None,
) -> int:
    """Character budget that should yield roughly ``target_tokens`` for this content.

    Uses the content's own chars-per-token ratio under the estimator so that
    injected tokenizers are respected.
    """
    if target_tokens <= 0:
        return 0
    est = estimate or estimate_tokens
    tokens = est(content) if content else 0
    if tokens <= 0:
        return target_tokens * CHARS_PER_TOKEN
    return int(target_tokens * len(content) / tokens)
