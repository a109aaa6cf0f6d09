"""Hard-clear pruning — replace expired tool results and stale turns with placeholders.

Two passes, in this order:

1. Expired tool calls. Any message referencing an expired tool-call id is
   cleared, whatever its role. Tool-call expiry is a resource-lifetime
   guarantee and outranks role-based retention.
2. Age (only when ``max_message_age > 0``). Messages older than the limit
   are cleared unless protected: system and user messages per config, and
   the last ``keep_last_n_assistant`` assistant messages by original order.

Messages are mutated in place. A cleared message is never examined again,
so running the controller on its own output clears nothing new.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from ..config import PruningConfig
from .archive import ArchiveSink, archive_clear
from .types import (
    ClearReason,
    HardClearResult,
    MessageRole,
    PrunableMessage,
    ToolCallTimestamp,
    utcnow,
)

log = logging.getLogger(__name__)


def tool_clear_placeholder(calls: list[ToolCallTimestamp], original_length: int) -> str:
    """``[Tool result cleared: read_file (call_1), 5000 chars removed]``"""
    refs = ", ".join(f"{c.tool_name} ({c.tool_call_id})" for c in calls)
    return f"[Tool result cleared: {refs}, {original_length} chars removed]"


def age_clear_placeholder(message: PrunableMessage) -> str:
    """``[Assistant message #4 cleared, 900 chars removed]`` plus an optional summary."""
    label = message.role.value.capitalize()
    text = f"[{label} message #{message.index} cleared, {message.original_length} chars removed]"
    summary = (message.summary or "").strip()
    if summary:
        text += f" Summary: {summary.splitlines()[0]}"
    return text


def protected_assistant_indices(
    messages: list[PrunableMessage],
    keep_last_n: int,
) -> set[int]:
    """Original indices of the last ``keep_last_n`` assistant messages."""
    if keep_last_n <= 0:
        return set()
    assistants = sorted(
        (m for m in messages if m.role == MessageRole.ASSISTANT),
        key=lambda m: m.index,
    )
    return {m.index for m in assistants[-keep_last_n:]}


def _expired_refs(message: PrunableMessage, expired: dict[str, ToolCallTimestamp]) -> list[ToolCallTimestamp]:
    return [expired[tid] for tid in message.tool_call_ids if tid in expired]


def _is_age_exempt(
    message: PrunableMessage,
    config: PruningConfig,
    protected: set[int],
) -> bool:
    if message.role == MessageRole.SYSTEM and config.keep_system_messages:
        return True
    if message.role == MessageRole.USER and config.keep_user_messages:
        return True
    if message.role == MessageRole.ASSISTANT and message.index in protected:
        return True
    return False


def _is_too_old(message: PrunableMessage, config: PruningConfig, now: datetime) -> bool:
    return config.age_clearing_enabled and now - message.timestamp > config.max_message_age


def should_hard_clear(
    message: PrunableMessage,
    expired_ids: Iterable[str],
    messages: list[PrunableMessage],
    config: PruningConfig,
    *,
    now: datetime | None = None,
) -> bool:
    """Preview whether ``apply_hard_clear`` would clear this message. No mutation."""
    if message.hard_cleared:
        return False
    expired_set = set(expired_ids)
    if any(tid in expired_set for tid in message.tool_call_ids):
        return True
    if not config.age_clearing_enabled:
        return False
    protected = protected_assistant_indices(messages, config.keep_last_n_assistant)
    if _is_age_exempt(message, config, protected):
        return False
    return _is_too_old(message, config, now or utcnow())


def apply_hard_clear(
    messages: list[PrunableMessage],
    expired_tool_calls: Iterable[ToolCallTimestamp],
    config: PruningConfig,
    *,
    now: datetime | None = None,
    archive: ArchiveSink | None = None,
) -> HardClearResult:
    """Run the expired-tool-call pass, then the age pass, over ``messages``."""
    now = now or utcnow()
    expired = {c.tool_call_id: c for c in expired_tool_calls}
    cleared_count = 0
    tool_calls_cleared: list[str] = []

    if expired:
        for msg in messages:
            if msg.hard_cleared:
                continue
            refs = _expired_refs(msg, expired)
            if not refs:
                continue
            original = msg.content
            placeholder = tool_clear_placeholder(refs, msg.original_length or 0)
            msg.mark_hard_cleared(placeholder)
            archive_clear(
                archive, msg,
                reason=ClearReason.TOOL_CALL_EXPIRED,
                original_content=original,
                placeholder=placeholder,
                now=now,
            )
            cleared_count += 1
            tool_calls_cleared.extend(r.tool_call_id for r in refs)
            log.debug("Cleared message #%d for expired tool calls %s", msg.index, [r.tool_call_id for r in refs])

    if config.age_clearing_enabled:
        protected = protected_assistant_indices(messages, config.keep_last_n_assistant)
        for msg in messages:
            if msg.hard_cleared or _is_age_exempt(msg, config, protected):
                continue
            if not _is_too_old(msg, config, now):
                continue
            original = msg.content
            placeholder = age_clear_placeholder(msg)
            msg.mark_hard_cleared(placeholder)
            archive_clear(
                archive, msg,
                reason=ClearReason.AGE,
                original_content=original,
                placeholder=placeholder,
                now=now,
            )
            cleared_count += 1
            log.debug("Cleared %s message #%d by age", msg.role.value, msg.index)

    if cleared_count:
        log.info(
            "Hard-cleared %d messages (%d tool calls expired)",
            cleared_count,
            len(tool_calls_cleared),
        )

    return HardClearResult(
        messages=messages,
        cleared_count=cleared_count,
        tool_calls_cleared=tool_calls_cleared,
    )
