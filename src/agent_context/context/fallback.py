"""Message-level fallback — collapse the whole conversation into one summary message.

Last resort when per-message compaction cannot bring the conversation under
budget. The summary is built locally from the messages themselves (no LLM
call), keeping the conversation flow, errors, decisions, file operations and
tool failures. Irreversible within the session.
"""

from __future__ import annotations

import logging
import re
import time
from collections import Counter
from datetime import datetime

from .archive import ArchiveSink, archive_clear
from .compression import aggressive_truncate
from .tokens import TokenEstimator, estimate_messages, estimate_tokens
from .types import (
    ClearReason,
    MessageFallbackResult,
    MessageRole,
    PrunableMessage,
    compression_ratio,
    utcnow,
)

log = logging.getLogger(__name__)

SUMMARY_HEADER = "## Conversation Summary (fallback)"
FALLBACK_PLACEHOLDER = "[Compacted into fallback summary]"

_MAX_FLOW_LINES = 20
_MAX_ITEMS = 5
_ITEM_CHARS = 200

_ERROR_RE = re.compile(r"(?:error|exception|failed):\s*(.+?)(?:\n|$)", re.IGNORECASE)
_DECISION_RE = re.compile(
    r"\b(?:decided|chose|confirmed?|agreed)(?:\s+to)?\s+(.+?)(?:\.|\n|$)",
    re.IGNORECASE,
)
_FILE_OP_RE = re.compile(
    r"\b(creat|edit|modif|delet|writ|read|updat)(?:e|ed|ing|ied|y)?\s+(?:file\s+)?"
    r"['\"`]?((?:[\w.-]+/)*[\w.-]+\.\w+)['\"`]?",
    re.IGNORECASE,
)


def _one_line(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."


def summarize_flow(messages: list[PrunableMessage]) -> list[str]:
    """User asks and the first words of each assistant reply, in order."""
    lines: list[str] = []
    last_topic = ""
    for m in messages:
        if m.role == MessageRole.USER:
            first = m.content.strip().split("\n")[0]
            topic = _one_line(first, 100)
            if topic and topic != last_topic:
                last_topic = topic
                lines.append(f"- User asked: {topic}")
        elif m.role == MessageRole.ASSISTANT:
            words = " ".join(m.content.split()[:10])
            if words:
                lines.append(f"  Assistant: {words}...")
    return lines[:_MAX_FLOW_LINES]


def extract_errors(messages: list[PrunableMessage]) -> list[str]:
    found = [
        _one_line(match.group(1), _ITEM_CHARS)
        for m in messages
        for match in _ERROR_RE.finditer(m.content)
    ]
    return found[-_MAX_ITEMS:]


def extract_decisions(messages: list[PrunableMessage]) -> list[str]:
    found = [
        _one_line(match.group(1), _ITEM_CHARS)
        for m in messages
        if m.role != MessageRole.TOOL
        for match in _DECISION_RE.finditer(m.content)
    ]
    return found[-_MAX_ITEMS:]


def extract_file_operations(messages: list[PrunableMessage]) -> list[str]:
    """File reads/writes from tool metadata and from prose like "edited src/app.py"."""
    ops: list[str] = []
    seen: set[str] = set()

    def add(label: str) -> None:
        if label not in seen:
            seen.add(label)
            ops.append(label)

    for m in messages:
        for key in ("files_read", "files_written"):
            for path in m.metadata.get(key, []):
                add(f"{'read' if key == 'files_read' else 'write'}: {path}")
        for match in _FILE_OP_RE.finditer(m.content):
            verb = match.group(1).lower()
            kind = "read" if verb == "read" else "delete" if verb == "delet" else "write"
            add(f"{kind}: {match.group(2)}")
    return ops


def extract_tool_failures(messages: list[PrunableMessage], max_failures: int = 8) -> list[str]:
    failures: list[str] = []
    for m in messages:
        if m.role != MessageRole.TOOL and m.metadata.get("type") != "tool_result":
            continue
        if not m.metadata.get("is_error"):
            continue
        name = m.metadata.get("tool_name", "unknown")
        failures.append(f"[{name}] {_one_line(m.content, 240)}")
    return failures[-max_failures:]


def build_summary_body(messages: list[PrunableMessage]) -> str:
    counts = Counter(m.role.value for m in messages)
    breakdown = ", ".join(f"{role}: {n}" for role, n in sorted(counts.items()))
    parts = [f"Messages: {len(messages)} ({breakdown})" if messages else "Messages: 0"]

    sections = [
        ("Conversation Flow", summarize_flow(messages)),
        ("Recent Errors", [f"- {e}" for e in extract_errors(messages)]),
        ("Key Decisions", [f"- {d}" for d in extract_decisions(messages)]),
        ("File Operations", [f"- {op}" for op in extract_file_operations(messages)]),
        ("Recent Tool Failures", [f"- {f}" for f in extract_tool_failures(messages)]),
    ]
    for title, lines in sections:
        if lines:
            parts.append(f"\n### {title}\n" + "\n".join(lines))
    return "\n".join(parts)


def apply_message_fallback(
    messages: list[PrunableMessage],
    target_tokens: int,
    *,
    estimate: TokenEstimator | None = None,
    archive: ArchiveSink | None = None,
    now: datetime | None = None,
) -> MessageFallbackResult:
    """Replace every message with a single synthetic system summary.

    The summary is stamped with ``now`` so the next age pass sees it as fresh.
    """
    started = time.perf_counter()
    now = now or utcnow()
    est = estimate or estimate_tokens
    original_tokens = estimate_messages(messages, est)

    header = f"{SUMMARY_HEADER}\n[Fallback summary of {len(messages)} messages]"
    body = build_summary_body(messages)
    body_target = max(0, target_tokens - est(header))
    if est(body) > body_target:
        body = aggressive_truncate(body, body_target, estimate=est).content
    content = f"{header}\n{body}"

    summary = PrunableMessage(
        role=MessageRole.SYSTEM,
        content=content,
        timestamp=now,
        index=min((m.index for m in messages), default=0),
        metadata={"type": "compaction_summary", "messages_compacted": len(messages)},
    )

    for m in messages:
        archive_clear(
            archive, m,
            reason=ClearReason.FALLBACK,
            original_content=m.content,
            placeholder=FALLBACK_PLACEHOLDER,
            now=now,
        )

    total_tokens = est(content)
    duration = max(0.0, time.perf_counter() - started)
    log.info(
        "Fallback summary: %d messages, %d -> %d tokens",
        len(messages), original_tokens, total_tokens,
    )
    return MessageFallbackResult(
        messages=[summary],
        used_fallback=True,
        original_tokens=original_tokens,
        total_tokens=total_tokens,
        compression_ratio=compression_ratio(total_tokens, original_tokens),
        messages_compacted=len(messages),
        duration=duration,
    )
