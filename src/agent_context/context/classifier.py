"""Message classification — content type detection and importance scoring.

Scoring is a pure function of the message and ``now``. The score combines
four weighted factors:

- recency: exponential decay with a configurable half-life
- role: system > user > assistant > tool
- content type: error and decision above code, code above prose
- markers: TODO/FIXME/IMPORTANT and friends, capped

Very long messages (likely verbose output) take a small penalty.
"""

from __future__ import annotations

import re
from datetime import datetime

from ..config import ClassifierConfig
from .types import ClassifiedMessage, ContentType, MessageRole, PrunableMessage, utcnow

ROLE_WEIGHTS: dict[MessageRole, float] = {
    MessageRole.SYSTEM: 1.0,
    MessageRole.USER: 0.8,
    MessageRole.ASSISTANT: 0.6,
    MessageRole.TOOL: 0.4,
}

TYPE_WEIGHTS: dict[ContentType, float] = {
    ContentType.ERROR: 1.0,
    ContentType.DECISION: 0.9,
    ContentType.CODE: 0.7,
    ContentType.TOOL_RESULT: 0.5,
    ContentType.PROSE: 0.3,
}

_CODE_PATTERNS = [
    re.compile(r"```"),
    re.compile(r"^(?: {4}|\t)\S", re.MULTILINE),
    re.compile(
        r"^\s*(?:def|class|import|from|function|const|let|var|export|async|public|private)\s",
        re.MULTILINE,
    ),
    re.compile(r"[{};]\s*$", re.MULTILINE),
]

_ERROR_PATTERNS = [
    re.compile(r"\berror\b", re.IGNORECASE),
    re.compile(r"exception", re.IGNORECASE),
    re.compile(r"\bfailed\b", re.IGNORECASE),
    re.compile(r"traceback", re.IGNORECASE),
    re.compile(r"stack trace", re.IGNORECASE),
    re.compile(r"^\s*at\s+[\w.$<>]+\s*\(", re.MULTILINE),
    re.compile(r'^\s*File ".+", line \d+', re.MULTILINE),
]

_DECISION_PATTERNS = [
    re.compile(r"\b(?:must|should|shouldn't|must not|never|always)\b", re.IGNORECASE),
    re.compile(r"\b(?:decided|decision|chose|selected|confirm(?:ed)?|approve[d]?)\b", re.IGNORECASE),
    re.compile(r"\b(?:will|won't)\s+(?:use|do|implement|keep|switch)\b", re.IGNORECASE),
]

_MARKER_RE = re.compile(r"\b(?:TODO|FIXME|XXX|HACK|IMPORTANT|NOTE)\b")


def detect_content_type(message: PrunableMessage) -> ContentType:
    """Lexical content-type detection. Tool messages are always tool results."""
    if message.role == MessageRole.TOOL:
        return ContentType.TOOL_RESULT
    content = message.content
    if any(p.search(content) for p in _CODE_PATTERNS):
        return ContentType.CODE
    if any(p.search(content) for p in _ERROR_PATTERNS):
        return ContentType.ERROR
    if any(p.search(content) for p in _DECISION_PATTERNS):
        return ContentType.DECISION
    return ContentType.PROSE


def count_markers(content: str) -> int:
    return len(_MARKER_RE.findall(content))


def recency_factor(timestamp: datetime, now: datetime, config: ClassifierConfig) -> float:
    """1.0 for a message created at ``now``, halving every ``recency_half_life``."""
    half_life = config.recency_half_life.total_seconds()
    age = max(0.0, (now - timestamp).total_seconds())
    if half_life <= 0:
        return 1.0
    return 0.5 ** (age / half_life)


def classify(
    message: PrunableMessage,
    *,
    now: datetime | None = None,
    config: ClassifierConfig | None = None,
) -> ClassifiedMessage:
    """Classify one message. Deterministic for a fixed ``now``."""
    cfg = config or ClassifierConfig()
    now = now or utcnow()
    content_type = detect_content_type(message)
    factors: list[str] = []

    recency = cfg.recency_weight * recency_factor(message.timestamp, now, cfg)
    factors.append(f"recency: +{recency:.2f}")

    role = cfg.role_weight * ROLE_WEIGHTS[message.role]
    factors.append(f"role({message.role.value}): +{role:.2f}")

    kind = cfg.content_weight * TYPE_WEIGHTS[content_type]
    factors.append(f"type({content_type.value}): +{kind:.2f}")

    score = recency + role + kind

    markers = count_markers(message.content)
    if markers:
        bonus = min(cfg.marker_cap, cfg.marker_bonus * markers)
        score += bonus
        factors.append(f"markers({markers}): +{bonus:.2f}")

    if len(message.content) > cfg.length_penalty_threshold:
        score -= cfg.length_penalty
        factors.append(f"length: -{cfg.length_penalty:.2f}")

    return ClassifiedMessage(
        message=message,
        content_type=content_type,
        importance_score=min(1.0, max(0.0, score)),
        factors=factors,
    )


def classify_all(
    messages: list[PrunableMessage],
    *,
    now: datetime | None = None,
    config: ClassifierConfig | None = None,
) -> list[ClassifiedMessage]:
    now = now or utcnow()
    return [classify(m, now=now, config=config) for m in messages]


def compression_priority(classified: list[ClassifiedMessage]) -> list[int]:
    """Positions ordered for compression: least important first, ties by position."""
    return sorted(range(len(classified)), key=lambda i: (classified[i].importance_score, i))
