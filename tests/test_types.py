"""Tests for message and result types."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from agent_context.context.types import (
    BudgetLevel,
    CompactionReport,
    ContentType,
    MessageRole,
    PrunableMessage,
    ToolCallTimestamp,
    compression_ratio,
)

NOW = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


def test_role_and_content_type_values() -> None:
    assert MessageRole.SYSTEM == "system"
    assert MessageRole.TOOL == "tool"
    assert ContentType.TOOL_RESULT == "tool_result"
    assert ContentType.PROSE == "prose"


def test_original_length_filled_from_content() -> None:
    m = PrunableMessage(role=MessageRole.USER, content="hello")
    assert m.original_length == 5
    assert m.hard_cleared is False
    assert m.soft_trimmed is False
    assert m.tool_call_ids == []


def test_original_length_kept_when_given() -> None:
    m = PrunableMessage(role="assistant", content="[placeholder]", original_length=900)
    assert m.original_length == 900
    assert m.role == MessageRole.ASSISTANT


def test_hard_clear_supersedes_soft_trim() -> None:
    m = PrunableMessage(role="tool", content="x" * 50, soft_trimmed=True)
    m.mark_hard_cleared("[gone]")
    assert m.content == "[gone]"
    assert m.hard_cleared is True
    assert m.soft_trimmed is False
    assert m.original_length == 50


def test_tool_call_expiry_is_strict() -> None:
    call = ToolCallTimestamp(
        tool_call_id="call_1",
        tool_name="bash",
        created_at=NOW,
        ttl=timedelta(minutes=5),
    )
    assert call.is_expired(NOW + timedelta(minutes=5)) is False
    assert call.is_expired(NOW + timedelta(minutes=5, seconds=1)) is True


def test_compression_ratio_bounds() -> None:
    assert compression_ratio(0, 0) == 0.0
    assert compression_ratio(50, 100) == 0.5
    assert compression_ratio(150, 100) == 0.0
    assert compression_ratio(100, 100) == 0.0


def test_report_summary_line_no_compaction() -> None:
    r = CompactionReport(level=BudgetLevel.OK, tokens_before=10, tokens_after=10)
    assert r.compacted is False
    assert r.tokens_saved == 0
    assert "no compaction" in r.summary_line()


def test_report_summary_line_over_budget() -> None:
    r = CompactionReport(
        level=BudgetLevel.CRITICAL,
        tokens_before=1000,
        tokens_after=400,
        strategies_used=["hard_clear", "message_fallback"],
        compression_ratio=0.6,
        over_budget=True,
    )
    line = r.summary_line()
    assert r.tokens_saved == 600
    assert "1000 -> 400" in line
    assert "hard_clear, message_fallback" in line
    assert "still over budget" in line
