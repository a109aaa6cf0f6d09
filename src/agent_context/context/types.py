"""Core data types for context compaction."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field, model_validator

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ContentType(str, Enum):
    """Lexical category of a message's content."""

    CODE = "code"
    ERROR = "error"
    DECISION = "decision"
    PROSE = "prose"
    TOOL_RESULT = "tool_result"


class CompressionStrategy(str, Enum):
    """Rungs of the progressive fallback ladder, least destructive first."""

    NONE = "none"
    TRUNCATE = "truncate"
    REMOVE_MIDDLE = "remove_middle"
    EXTRACT_KEY = "extract_key"
    AGGRESSIVE_TRUNCATE = "aggressive_truncate"


class ClearReason(str, Enum):
    TOOL_CALL_EXPIRED = "tool_call_expired"
    AGE = "age"
    FALLBACK = "fallback_summary"


class BudgetLevel(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class PrunableMessage(BaseModel):
    """One turn of the conversation under management.

    ``hard_cleared`` is monotonic: once set, nothing in this package resets it.
    """

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    index: int = 0
    original_length: int | None = None
    tool_call_ids: list[str] = Field(default_factory=list)
    summary: str | None = None
    hard_cleared: bool = False
    soft_trimmed: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_original_length(self) -> PrunableMessage:
        if self.original_length is None:
            self.original_length = len(self.content)
        return self

    def mark_hard_cleared(self, placeholder: str) -> None:
        """Replace content with a placeholder. Hard clear supersedes soft trim."""
        self.content = placeholder
        self.hard_cleared = True
        self.soft_trimmed = False


class ToolCallTimestamp(BaseModel):
    """Creation time and lifetime of one tool call."""

    tool_call_id: str
    tool_name: str
    created_at: datetime
    ttl: timedelta

    def is_expired(self, now: datetime) -> bool:
        return now - self.created_at > self.ttl


class ClassifiedMessage(BaseModel):
    """A message with its detected content type and importance in [0, 1]."""

    message: PrunableMessage
    content_type: ContentType
    importance_score: float
    factors: list[str] = Field(default_factory=list)


class HardClearResult(BaseModel):
    """Outcome of one hard-clear pass."""

    messages: list[PrunableMessage]
    cleared_count: int = 0
    tool_calls_cleared: list[str] = Field(default_factory=list)


class CompressionResult(BaseModel):
    """Output of one rung (or the whole ladder) of the fallback compressor."""

    content: str
    token_count: int
    original_tokens: int
    compression_ratio: float
    strategy: CompressionStrategy

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.token_count


class MessageFallbackResult(BaseModel):
    """Result of collapsing a whole message list into one summary message."""

    messages: list[PrunableMessage]
    used_fallback: bool = True
    original_tokens: int
    total_tokens: int
    compression_ratio: float
    messages_compacted: int
    duration: float


class ArchiveRecord(BaseModel):
    """Provenance of content removed from the live conversation."""

    index: int
    reason: ClearReason
    cleared_at: datetime
    placeholder_text: str
    original_content: str
    original_length: int
    role: MessageRole
    tool_call_ids: list[str] = Field(default_factory=list)


class CompactionReport(BaseModel):
    """What one budget check did, for notices and assertions."""

    level: BudgetLevel
    tokens_before: int
    tokens_after: int
    strategies_used: list[str] = Field(default_factory=list)
    cleared_count: int = 0
    tool_calls_cleared: list[str] = Field(default_factory=list)
    messages_compressed: int = 0
    used_fallback: bool = False
    compression_ratio: float = 0.0
    over_budget: bool = False
    preserved_importance_avg: float = 0.0
    affected_importance_avg: float = 0.0
    compressions: list[CompressionResult] = Field(default_factory=list)
    duration: float = 0.0

    @property
    def tokens_saved(self) -> int:
        return max(0, self.tokens_before - self.tokens_after)

    @property
    def compacted(self) -> bool:
        return bool(self.strategies_used)

    def summary_line(self) -> str:
        """One-line notice, e.g. for the CLI status bar."""
        if not self.compacted:
            return f"Context {self.tokens_before} tokens ({self.level.value}), no compaction needed"
        line = (
            f"Context compacted {self.tokens_before} -> {self.tokens_after} tokens "
            f"({self.compression_ratio:.0%} saved) via {', '.join(self.strategies_used)}"
        )
        if self.over_budget:
            line += " [still over budget]"
        return line


def compression_ratio(token_count: int, original_tokens: int) -> float:
    """``1 - token_count / original_tokens``, 0 for empty input, never negative."""
    if original_tokens <= 0:
        return 0.0
    return max(0.0, 1.0 - token_count / original_tokens)
