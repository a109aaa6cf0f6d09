"""Engine facade — one compaction engine per conversation session."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from .config import EngineConfig
from .context.archive import ContextArchive
from .context.monitor import BudgetThresholds, CompactionOutcome, check_and_compact
from .context.pruning import should_hard_clear
from .context.tokens import TokenEstimator, estimate_messages, estimate_tokens
from .context.tool_tracker import ToolCallTracker
from .context.types import ArchiveRecord, Clock, PrunableMessage, ToolCallTimestamp, utcnow
from .context.window_guard import (
    HARD_MIN_TOKENS,
    ContextWindow,
    derive_thresholds,
    resolve_context_window,
)


class CompactionEngine:
    """Owns one session's tracker, archive, clock and estimator.

    Construct one per session and pass it around; nothing here is shared
    between sessions. Not thread-safe: one writer per session.
    Raises ``ValueError`` when the resolved context window is too small to
    compact into.

    Usage::

        engine = CompactionEngine.from_config()
        engine.record_tool_call("call_1", "read_file")

        # Once per turn, before calling the model:
        outcome = engine.check_and_compact(messages)
        messages = outcome.messages
        if outcome.report.compacted:
            print(outcome.report.summary_line())
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        thresholds: BudgetThresholds | None = None,
        model_context_window: int | None = None,
        estimate: TokenEstimator | None = None,
        clock: Clock | None = None,
        on_archive: Callable[[ArchiveRecord], None] | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._estimate = estimate or estimate_tokens
        self._clock = clock or utcnow
        self._tracker = ToolCallTracker(default_ttl=self._config.tools.default_ttl)
        self._archive = ContextArchive(
            max_records=self._config.max_archive_records,
            on_record=on_archive,
        )

        self._window = resolve_context_window(
            model_context_window=model_context_window,
            config_cap=self._config.budget.context_tokens,
            default_tokens=self._config.budget.context_tokens,
        )
        if not self._window.usable:
            raise ValueError(
                f"Context window {self._window.tokens} tokens ({self._window.source.value}) "
                f"is below the {HARD_MIN_TOKENS}-token minimum"
            )
        self._thresholds = thresholds or derive_thresholds(self._window, self._config.budget)

    @classmethod
    def from_config(cls, config_path: str | Path | None = None, **kwargs) -> CompactionEngine:
        """Create an engine from a CONFIG.yaml file (packaged defaults if omitted)."""
        from . import load_config

        cfg = load_config(Path(config_path) if config_path else None)
        return cls(EngineConfig.from_dict(cfg or {}), **kwargs)

    # -- Properties --

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def thresholds(self) -> BudgetThresholds:
        return self._thresholds

    @property
    def tracker(self) -> ToolCallTracker:
        return self._tracker

    @property
    def archive(self) -> ContextArchive:
        return self._archive

    @property
    def window(self) -> ContextWindow:
        return self._window

    @property
    def context_tokens(self) -> int:
        """Effective context window size in tokens."""
        return self._window.tokens

    # -- Operations --

    def now(self) -> datetime:
        return self._clock()

    def record_tool_call(
        self,
        tool_call_id: str,
        tool_name: str,
        ttl: timedelta | None = None,
    ) -> ToolCallTimestamp:
        return self._tracker.record_call(tool_call_id, tool_name, ttl, created_at=self.now())

    def estimate_total(self, messages: list[PrunableMessage]) -> int:
        return estimate_messages(messages, self._estimate)

    def preview(self, messages: list[PrunableMessage]) -> list[int]:
        """Indices of messages a hard clear would replace right now. Dry run."""
        now = self.now()
        expired_ids = [c.tool_call_id for c in self._tracker.expired(now)]
        return [
            m.index
            for m in messages
            if should_hard_clear(m, expired_ids, messages, self._config.pruning, now=now)
        ]

    def check_and_compact(self, messages: list[PrunableMessage]) -> CompactionOutcome:
        """Run one budget check over the session's messages."""
        return check_and_compact(
            messages,
            self._tracker,
            self._config.pruning,
            self._thresholds,
            now=self.now(),
            estimate=self._estimate,
            archive=self._archive,
            compression=self._config.compression,
            classifier=self._config.classifier,
        )
