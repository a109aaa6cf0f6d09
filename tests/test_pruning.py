"""Tests for the hard-clear pruning controller."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from agent_context.config import PruningConfig
from agent_context.context.archive import ContextArchive
from agent_context.context.pruning import (
    apply_hard_clear,
    protected_assistant_indices,
    should_hard_clear,
)
from agent_context.context.types import ClearReason, PrunableMessage, ToolCallTimestamp

NOW = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


def _msg(
    role: str,
    index: int,
    *,
    content: str = "x" * 100,
    age_minutes: float = 0,
    tool_call_ids: tuple[str, ...] = (),
) -> PrunableMessage:
    return PrunableMessage(
        role=role,
        content=content,
        index=index,
        timestamp=NOW - timedelta(minutes=age_minutes),
        tool_call_ids=list(tool_call_ids),
    )


def _expired(tool_call_id: str, tool_name: str = "read_file") -> ToolCallTimestamp:
    return ToolCallTimestamp(
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        created_at=NOW - timedelta(hours=1),
        ttl=timedelta(minutes=10),
    )


def _snapshot(messages: list[PrunableMessage]) -> list[dict]:
    return [m.model_dump() for m in messages]


# -- Expired tool-call pass --


def test_expired_tool_result_is_cleared_with_placeholder() -> None:
    msg = _msg("tool", 2, tool_call_ids=("call_1",))
    msg.soft_trimmed = True
    result = apply_hard_clear([msg], [_expired("call_1")], PruningConfig(), now=NOW)
    assert msg.content == "[Tool result cleared: read_file (call_1), 100 chars removed]"
    assert msg.hard_cleared is True
    assert msg.soft_trimmed is False
    assert result.cleared_count == 1
    assert result.tool_calls_cleared == ["call_1"]
    assert result.messages[0] is msg


def test_placeholder_lists_every_expired_call() -> None:
    msg = _msg("assistant", 1, tool_call_ids=("call_1", "call_live", "call_2"))
    apply_hard_clear(
        [msg],
        [_expired("call_1", "grep"), _expired("call_2", "bash")],
        PruningConfig(),
        now=NOW,
    )
    assert msg.content == "[Tool result cleared: grep (call_1), bash (call_2), 100 chars removed]"


def test_unexpired_tool_result_is_kept() -> None:
    msg = _msg("tool", 0, tool_call_ids=("call_live",))
    result = apply_hard_clear([msg], [_expired("call_other")], PruningConfig(), now=NOW)
    assert result.cleared_count == 0
    assert msg.hard_cleared is False
    assert msg.content == "x" * 100


def test_tool_expiry_overrides_user_exemption() -> None:
    config = PruningConfig(keep_user_messages=True, max_message_age=timedelta(minutes=5))
    msg = _msg("user", 0, tool_call_ids=("call_1",))
    apply_hard_clear([msg], [_expired("call_1")], config, now=NOW)
    assert msg.hard_cleared is True


def test_tool_expiry_overrides_system_exemption() -> None:
    msg = _msg("system", 0, tool_call_ids=("call_1",))
    apply_hard_clear([msg], [_expired("call_1")], PruningConfig(keep_system_messages=True), now=NOW)
    assert msg.hard_cleared is True


def test_old_user_message_without_expired_call_is_kept() -> None:
    config = PruningConfig(keep_user_messages=True, max_message_age=timedelta(minutes=5))
    msg = _msg("user", 0, age_minutes=60, tool_call_ids=("call_live",))
    result = apply_hard_clear([msg], [], config, now=NOW)
    assert result.cleared_count == 0
    assert msg.hard_cleared is False


def test_already_cleared_message_is_not_cleared_again() -> None:
    msg = _msg("tool", 0, tool_call_ids=("call_1",))
    msg.mark_hard_cleared("[earlier placeholder]")
    result = apply_hard_clear([msg], [_expired("call_1")], PruningConfig(), now=NOW)
    assert result.cleared_count == 0
    assert result.tool_calls_cleared == []
    assert msg.content == "[earlier placeholder]"


# -- Age pass --


def test_age_pass_clears_old_assistants_outside_protected_window() -> None:
    config = PruningConfig(keep_last_n_assistant=2, max_message_age=timedelta(minutes=10))
    messages = [_msg("assistant", i, age_minutes=60) for i in range(5)]
    result = apply_hard_clear(messages, [], config, now=NOW)
    assert result.cleared_count == 3
    assert [m.hard_cleared for m in messages] == [True, True, True, False, False]
    assert messages[0].content == "[Assistant message #0 cleared, 100 chars removed]"


def test_assistant_ordinal_ignores_other_roles() -> None:
    config = PruningConfig(keep_last_n_assistant=1, max_message_age=timedelta(minutes=10))
    messages = [
        _msg("assistant", 0, age_minutes=60),
        _msg("assistant", 1, age_minutes=60),
        _msg("user", 2, age_minutes=60),
        _msg("tool", 3, age_minutes=60),
    ]
    assert protected_assistant_indices(messages, 1) == {1}
    apply_hard_clear(messages, [], config, now=NOW)
    assert [m.hard_cleared for m in messages] == [True, False, False, True]
    assert messages[3].content == "[Tool message #3 cleared, 100 chars removed]"


def test_assistant_ordinal_uses_original_index_not_list_position() -> None:
    messages = [_msg("assistant", 9), _msg("assistant", 4)]
    assert protected_assistant_indices(messages, 1) == {9}
    assert protected_assistant_indices(messages, 0) == set()


def test_recent_messages_survive_age_pass() -> None:
    config = PruningConfig(keep_last_n_assistant=0, max_message_age=timedelta(minutes=10))
    messages = [_msg("assistant", 0, age_minutes=5), _msg("tool", 1, age_minutes=10)]
    result = apply_hard_clear(messages, [], config, now=NOW)
    assert result.cleared_count == 0


def test_zero_max_age_disables_age_pass() -> None:
    config = PruningConfig(keep_last_n_assistant=0, max_message_age=timedelta(0))
    messages = [_msg("assistant", 0, age_minutes=10_000)]
    assert apply_hard_clear(messages, [], config, now=NOW).cleared_count == 0


def test_system_and_user_exemptions_can_be_turned_off() -> None:
    config = PruningConfig(
        keep_system_messages=False,
        keep_user_messages=False,
        max_message_age=timedelta(minutes=10),
    )
    messages = [_msg("system", 0, age_minutes=60), _msg("user", 1, age_minutes=60)]
    apply_hard_clear(messages, [], config, now=NOW)
    assert messages[0].content == "[System message #0 cleared, 100 chars removed]"
    assert messages[1].content == "[User message #1 cleared, 100 chars removed]"


def test_age_placeholder_appends_summary_line() -> None:
    config = PruningConfig(keep_last_n_assistant=0, max_message_age=timedelta(minutes=10))
    msg = _msg("assistant", 7, age_minutes=60)
    msg.summary = "Refactored the parser.\nDetails follow."
    apply_hard_clear([msg], [], config, now=NOW)
    assert msg.content == (
        "[Assistant message #7 cleared, 100 chars removed] Summary: Refactored the parser."
    )


def test_original_length_reported_after_soft_trim() -> None:
    config = PruningConfig(keep_last_n_assistant=0, max_message_age=timedelta(minutes=10))
    msg = _msg("assistant", 0, content="y" * 5000, age_minutes=60)
    msg.content = "y" * 200
    msg.soft_trimmed = True
    apply_hard_clear([msg], [], config, now=NOW)
    assert "5000 chars removed" in msg.content


# -- Idempotence, preview, archive --


def test_second_pass_changes_nothing() -> None:
    config = PruningConfig(keep_last_n_assistant=1, max_message_age=timedelta(minutes=10))
    messages = [
        _msg("system", 0, age_minutes=90),
        _msg("user", 1, age_minutes=90),
        _msg("assistant", 2, age_minutes=90, tool_call_ids=("call_1",)),
        _msg("tool", 3, age_minutes=90, tool_call_ids=("call_1",)),
        _msg("assistant", 4, age_minutes=80),
        _msg("tool", 5, age_minutes=1, tool_call_ids=("call_2",)),
        _msg("assistant", 6, age_minutes=70),
    ]
    first = apply_hard_clear(messages, [_expired("call_1")], config, now=NOW)
    after_first = _snapshot(first.messages)
    assert first.cleared_count == 3

    second = apply_hard_clear(first.messages, [], config, now=NOW)
    assert second.cleared_count == 0
    assert _snapshot(second.messages) == after_first

    third = apply_hard_clear(first.messages, [_expired("call_1")], config, now=NOW)
    assert third.cleared_count == 0
    assert _snapshot(third.messages) == after_first


def test_should_hard_clear_matches_apply() -> None:
    config = PruningConfig(keep_last_n_assistant=1, max_message_age=timedelta(minutes=10))
    messages = [
        _msg("system", 0, age_minutes=90),
        _msg("user", 1, age_minutes=90, tool_call_ids=("call_1",)),
        _msg("assistant", 2, age_minutes=90),
        _msg("tool", 3, age_minutes=2),
        _msg("assistant", 4, age_minutes=90),
    ]
    expired = [_expired("call_1")]
    preview = [
        should_hard_clear(m, ["call_1"], messages, config, now=NOW) for m in messages
    ]
    assert all(not m.hard_cleared for m in messages)

    apply_hard_clear(messages, expired, config, now=NOW)
    assert preview == [m.hard_cleared for m in messages]
    assert preview == [False, True, True, False, False]
    assert not any(should_hard_clear(m, ["call_1"], messages, config, now=NOW) for m in messages)


def test_clears_are_archived_with_provenance() -> None:
    archive = ContextArchive()
    config = PruningConfig(keep_last_n_assistant=0, max_message_age=timedelta(minutes=10))
    messages = [
        _msg("tool", 3, content="file contents", tool_call_ids=("call_1",)),
        _msg("assistant", 4, content="old reasoning", age_minutes=30),
    ]
    apply_hard_clear(messages, [_expired("call_1")], config, now=NOW, archive=archive)

    assert len(archive) == 2
    tool_rec, age_rec = archive.records
    assert tool_rec.index == 3
    assert tool_rec.reason == ClearReason.TOOL_CALL_EXPIRED
    assert tool_rec.original_content == "file contents"
    assert tool_rec.placeholder_text == messages[0].content
    assert tool_rec.tool_call_ids == ["call_1"]
    assert tool_rec.cleared_at == NOW
    assert age_rec.cleared_at == NOW
    assert age_rec.reason == ClearReason.AGE
    assert archive.by_reason(ClearReason.AGE) == [age_rec]


def test_empty_message_list() -> None:
    result = apply_hard_clear([], [_expired("call_1")], PruningConfig(), now=NOW)
    assert result.messages == []
    assert result.cleared_count == 0
