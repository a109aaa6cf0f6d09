"""Tool-call lifecycle tracking — which tool results have outlived their TTL."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable

from .types import ToolCallTimestamp, utcnow

log = logging.getLogger(__name__)


class ToolCallTracker:
    """Per-session map of outstanding tool calls keyed by id.

    ``expired()`` is a query, not a consumer: an expired call keeps being
    reported until the caller ``remove()``s it after clearing succeeds.
    """

    def __init__(self, default_ttl: timedelta = timedelta(minutes=10)) -> None:
        self._default_ttl = default_ttl
        self._calls: dict[str, ToolCallTimestamp] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, tool_call_id: object) -> bool:
        return tool_call_id in self._calls

    def record_call(
        self,
        tool_call_id: str,
        tool_name: str,
        ttl: timedelta | None = None,
        *,
        created_at: datetime | None = None,
    ) -> ToolCallTimestamp:
        """Start tracking a tool call. Re-recording an id replaces its entry."""
        entry = ToolCallTimestamp(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            created_at=created_at or utcnow(),
            ttl=self._default_ttl if ttl is None else ttl,
        )
        self._calls[tool_call_id] = entry
        return entry

    def get(self, tool_call_id: str) -> ToolCallTimestamp | None:
        return self._calls.get(tool_call_id)

    def expired(self, now: datetime | None = None) -> list[ToolCallTimestamp]:
        """All calls with ``now - created_at > ttl``, oldest first."""
        now = now or utcnow()
        found = [c for c in self._calls.values() if c.is_expired(now)]
        return sorted(found, key=lambda c: c.created_at)

    def remove(self, tool_call_ids: Iterable[str]) -> int:
        """Stop tracking the given ids. Returns how many were present."""
        removed = 0
        for tid in tool_call_ids:
            if self._calls.pop(tid, None) is not None:
                removed += 1
        if removed:
            log.debug("Stopped tracking %d tool calls", removed)
        return removed
