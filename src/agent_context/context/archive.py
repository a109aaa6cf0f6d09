"""Append-only record of content evicted from the live conversation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Protocol

from .types import ArchiveRecord, ClearReason, PrunableMessage, utcnow

log = logging.getLogger(__name__)


class ArchiveSink(Protocol):
    """Anything that accepts archive records. Delivery is fire-and-forget."""

    def record(self, entry: ArchiveRecord) -> None: ...


class ContextArchive:
    """In-memory archive for one session.

    Write-only from the engine's side. An optional ``on_record`` callback
    forwards each record to a long-term memory subsystem as it arrives.
    """

    def __init__(
        self,
        *,
        max_records: int = 1000,
        on_record: Callable[[ArchiveRecord], None] | None = None,
    ) -> None:
        self._records: list[ArchiveRecord] = []
        self._max_records = max_records
        self._on_record = on_record

    @property
    def records(self) -> list[ArchiveRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def record(self, entry: ArchiveRecord) -> None:
        self._records.append(entry)
        if self._max_records > 0 and len(self._records) > self._max_records:
            del self._records[: len(self._records) - self._max_records]
        if self._on_record is not None:
            self._on_record(entry)

    def by_reason(self, reason: ClearReason) -> list[ArchiveRecord]:
        return [r for r in self._records if r.reason == reason]


def archive_clear(
    sink: ArchiveSink | None,
    message: PrunableMessage,
    *,
    reason: ClearReason,
    original_content: str,
    placeholder: str,
    now: datetime | None = None,
) -> None:
    """Emit one record for a message whose content was just replaced."""
    if sink is None:
        return
    sink.record(ArchiveRecord(
        index=message.index,
        reason=reason,
        cleared_at=now or utcnow(),
        placeholder_text=placeholder,
        original_content=original_content,
        original_length=message.original_length or 0,
        role=message.role,
        tool_call_ids=list(message.tool_call_ids),
    ))
    log.debug("Archived message #%d (%s)", message.index, reason.value)
