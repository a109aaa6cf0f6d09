"""Budget monitor — decide once per turn how hard to compact, and report what happened.

Ordering guarantee: structural pruning (hard clear) always runs before any
content rewriting, and the message-level summary is the strict last resort,
invoked at most once per check.

    below warning           no-op
    warning .. critical     hard clear only
    at/above critical       hard clear, then per-message progressive
                            fallback (least important first), then the
                            message-level summary if still at/above critical

The tool tracker forgets an id once it expires, since the hard clear removes
every live reference in the same pass, and forgets every id the summary absorbs.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple

import numpy as np

from ..config import ClassifierConfig, CompressionConfig, PruningConfig
from .archive import ArchiveSink
from .classifier import classify_all, compression_priority
from .compression import apply_progressive_fallback
from .fallback import apply_message_fallback
from .pruning import apply_hard_clear
from .tokens import TokenEstimator, estimate_messages, estimate_tokens
from .tool_tracker import ToolCallTracker
from .types import (
    BudgetLevel,
    CompactionReport,
    CompressionResult,
    MessageRole,
    PrunableMessage,
    compression_ratio,
    utcnow,
)

log = logging.getLogger(__name__)

HARD_CLEAR = "hard_clear"
MESSAGE_FALLBACK = "message_fallback"


@dataclass(frozen=True)
class BudgetThresholds:
    """Token levels at which compaction starts (warning) and escalates (critical).

    ``target_tokens`` is what the message-level summary aims for; it
    defaults to the warning level.
    """

    warning_tokens: int
    critical_tokens: int
    target_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.warning_tokens > self.critical_tokens:
            raise ValueError(
                f"warning_tokens {self.warning_tokens} exceeds critical_tokens {self.critical_tokens}"
            )

    @property
    def summary_target(self) -> int:
        return self.warning_tokens if self.target_tokens is None else self.target_tokens

    def level(self, tokens: int) -> BudgetLevel:
        if tokens >= self.critical_tokens:
            return BudgetLevel.CRITICAL
        if tokens >= self.warning_tokens:
            return BudgetLevel.WARNING
        return BudgetLevel.OK


class CompactionOutcome(NamedTuple):
    messages: list[PrunableMessage]
    report: CompactionReport


def _importance_averages(scores: list[float], affected: list[bool]) -> tuple[float, float]:
    """Mean importance of untouched vs. rewritten messages."""
    if not scores:
        return 0.0, 0.0
    arr = np.asarray(scores, dtype=np.float64)
    mask = np.asarray(affected, dtype=bool)
    preserved = float(arr[~mask].mean()) if (~mask).any() else 0.0
    touched = float(arr[mask].mean()) if mask.any() else 0.0
    return preserved, touched


def _compress_messages(
    messages: list[PrunableMessage],
    order: list[int],
    total: int,
    critical_tokens: int,
    config: PruningConfig,
    compression: CompressionConfig,
    est: TokenEstimator,
) -> tuple[int, list[CompressionResult], set[int]]:
    """Run the fallback ladder per message until the total drops below critical."""
    results: list[CompressionResult] = []
    touched: set[int] = set()
    for pos in order:
        if total < critical_tokens:
            break
        msg = messages[pos]
        if msg.hard_cleared:
            continue
        if msg.role == MessageRole.SYSTEM and config.keep_system_messages:
            continue
        before = est(msg.content)
        if before <= compression.max_message_tokens:
            continue
        result = apply_progressive_fallback(
            msg.content,
            compression.max_message_tokens,
            estimate=est,
            safety_margin=compression.safety_margin,
        )
        if result.content == msg.content:
            continue
        msg.content = result.content
        msg.soft_trimmed = True
        total -= before - result.token_count
        results.append(result)
        touched.add(pos)
        log.debug(
            "Message #%d: %d -> %d tokens (%s)",
            msg.index, before, result.token_count, result.strategy.value,
        )
    return total, results, touched


def check_and_compact(
    messages: list[PrunableMessage],
    tool_tracker: ToolCallTracker,
    config: PruningConfig,
    thresholds: BudgetThresholds,
    *,
    now: datetime | None = None,
    estimate: TokenEstimator | None = None,
    archive: ArchiveSink | None = None,
    compression: CompressionConfig | None = None,
    classifier: ClassifierConfig | None = None,
) -> CompactionOutcome:
    """Bring ``messages`` back under budget, escalating only as far as needed."""
    started = time.perf_counter()
    est = estimate or estimate_tokens
    now = now or utcnow()
    compression = compression or CompressionConfig()

    tokens_before = estimate_messages(messages, est)
    level = thresholds.level(tokens_before)
    if level == BudgetLevel.OK:
        return CompactionOutcome(messages, CompactionReport(
            level=level,
            tokens_before=tokens_before,
            tokens_after=tokens_before,
            duration=time.perf_counter() - started,
        ))

    originals = list(messages)
    # Scored before the hard clear. Cleared messages are skipped by compression,
    # and the report weighs what was lost by its original content.
    classified = classify_all(originals, now=now, config=classifier)
    already_cleared = [m.hard_cleared for m in originals]
    strategies: list[str] = []

    expired = tool_tracker.expired(now)
    cleared = apply_hard_clear(messages, expired, config, now=now, archive=archive)
    if cleared.cleared_count:
        strategies.append(HARD_CLEAR)
    # The tool pass clears every live reference to an expired id, so none is still needed.
    tool_tracker.remove(c.tool_call_id for c in expired)
    affected = [m.hard_cleared and not was for m, was in zip(originals, already_cleared)]
    total = estimate_messages(messages, est)

    compressions: list[CompressionResult] = []
    used_fallback = False
    if level == BudgetLevel.CRITICAL and total >= thresholds.critical_tokens:
        total, compressions, touched = _compress_messages(
            messages,
            compression_priority(classified),
            total,
            thresholds.critical_tokens,
            config,
            compression,
            est,
        )
        for pos in touched:
            affected[pos] = True
        for r in compressions:
            if r.strategy.value not in strategies:
                strategies.append(r.strategy.value)

        if total >= thresholds.critical_tokens:
            fallback = apply_message_fallback(
                messages, thresholds.summary_target, estimate=est, archive=archive, now=now,
            )
            tool_tracker.remove(tid for m in originals for tid in m.tool_call_ids)
            messages = fallback.messages
            total = fallback.total_tokens
            used_fallback = True
            affected = [True] * len(originals)
            strategies.append(MESSAGE_FALLBACK)

    preserved_avg, affected_avg = _importance_averages(
        [c.importance_score for c in classified], affected,
    )
    over_budget = total >= thresholds.critical_tokens
    report = CompactionReport(
        level=level,
        tokens_before=tokens_before,
        tokens_after=total,
        strategies_used=strategies,
        cleared_count=cleared.cleared_count,
        tool_calls_cleared=cleared.tool_calls_cleared,
        messages_compressed=len(compressions),
        used_fallback=used_fallback,
        compression_ratio=compression_ratio(total, tokens_before),
        over_budget=over_budget,
        preserved_importance_avg=preserved_avg,
        affected_importance_avg=affected_avg,
        compressions=compressions,
        duration=time.perf_counter() - started,
    )

    if over_budget:
        log.warning(
            "Context still over budget after full fallback: %d tokens (critical %d)",
            total, thresholds.critical_tokens,
        )
    elif strategies:
        log.info("%s", report.summary_line())
    return CompactionOutcome(messages, report)
