from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Iterable, List, Optional, Protocol
from uuid import UUID

from src.delivery.config import OutboxConfig
from src.entity.outbox import (ALLOWED_TRANSITIONS, OutboxEntry, OutboxStatus,
                               TransitionReason, TransitionRecord, utcnow)
from src.exceptions import InvalidTransitionError
from src.logger import logger


class EntryWriter(Protocol):
    async def update_entry(
        self,
        entry_id: UUID,
        values: dict[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> None: ...


class TransitionLog:
    """
    Sink for transition records.

    Each record is logged and kept in a bounded in-memory history.
    """

    def __init__(self, *, history: int = 1000) -> None:
        self._recent: Deque[TransitionRecord] = deque(maxlen=history)

    def append(self, record: TransitionRecord) -> None:
        self._recent.append(record)
        logger.info(
            "Outbox status transition",
            extra={
                "outbox_id": str(record.entry_id),
                "from_status": record.from_status.value,
                "to_status": record.to_status.value,
                "reason": record.reason,
            },
        )

    @property
    def recent(self) -> List[TransitionRecord]:
        return list(self._recent)

    def for_entry(self, entry_id: UUID) -> List[TransitionRecord]:
        return [record for record in self._recent if record.entry_id == entry_id]


class TransitionEngine:
    """
    The only writer of ``status`` outside the claim statement.

    A record reaches the log only after its write has succeeded; a failed
    write propagates to the caller and leaves no record behind.
    """

    def __init__(
        self,
        store: EntryWriter,
        log: TransitionLog,
        config: OutboxConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._log = log
        self._config = config
        self._clock = clock
        # One session is shared by concurrently dispatched entries.
        self._write_lock = asyncio.Lock()

    async def transition(
        self,
        entry_id: UUID,
        from_status: OutboxStatus,
        to_status: OutboxStatus,
        reason: str,
        **extra_fields: Any,
    ) -> TransitionRecord:
        # Entries enter PROCESSING only through the claim statement.
        if to_status is OutboxStatus.PROCESSING or to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidTransitionError(
                entry_id=entry_id,
                from_status=from_status,
                to_status=to_status,
            )
        async with self._write_lock:
            await self._store.update_entry(
                entry_id,
                {"status": to_status, **extra_fields},
                now=self._clock(),
            )
        record = TransitionRecord(
            entry_id=entry_id,
            from_status=from_status,
            to_status=to_status,
            reason=str(reason),
        )
        self._log.append(record)
        return record

    def record_bulk(
        self,
        entry_ids: Iterable[UUID],
        from_status: OutboxStatus,
        to_status: OutboxStatus,
        reason: str,
    ) -> List[TransitionRecord]:
        """
        Records for a bulk update the store has already committed.
        """
        records = [
            TransitionRecord(
                entry_id=entry_id,
                from_status=from_status,
                to_status=to_status,
                reason=str(reason),
            )
            for entry_id in entry_ids
        ]
        for record in records:
            self._log.append(record)
        return records

    def record_claims(self, entries: Iterable[OutboxEntry]) -> List[TransitionRecord]:
        records = []
        for entry in entries:
            # The claim statement does not report the prior status.
            previous = OutboxStatus.FAILED if entry.attempts > 0 else OutboxStatus.PENDING
            record = TransitionRecord(
                entry_id=entry.id,
                from_status=previous,
                to_status=OutboxStatus.PROCESSING,
                reason=TransitionReason.CLAIMED.value,
            )
            self._log.append(record)
            records.append(record)
        return records

    async def complete_delivery(self, entry: OutboxEntry) -> OutboxStatus:
        await self.transition(
            entry.id,
            OutboxStatus.PROCESSING,
            OutboxStatus.SENT,
            TransitionReason.DELIVERY_SUCCESS.value,
            attempts=entry.attempts + 1,
        )
        return OutboxStatus.SENT

    async def fail_delivery(self, entry: OutboxEntry, error: Optional[str]) -> OutboxStatus:
        """
        Counts the failed attempt and schedules the retry, or dead-letters
        the entry once ``max_attempts`` is reached.
        """
        attempts = entry.attempts + 1
        next_retry_at = self._clock() + self._config.backoff_delay(attempts)
        if attempts >= entry.max_attempts:
            status, reason = OutboxStatus.DEAD, TransitionReason.MAX_ATTEMPTS_EXCEEDED
        else:
            status, reason = OutboxStatus.FAILED, TransitionReason.DELIVERY_FAILURE

        await self.transition(
            entry.id,
            OutboxStatus.PROCESSING,
            status,
            reason.value,
            attempts=attempts,
            last_error=error or "Channel delivery returned failure",
            next_retry_at=next_retry_at,
        )
        return status
