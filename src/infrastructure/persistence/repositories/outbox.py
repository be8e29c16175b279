from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.entity.outbox import (CLAIMABLE_STATUSES, NewOutboxEntry, OutboxEntry,
                               OutboxStatus, utcnow)
from src.exceptions import EntryNotFoundError, RepositoryError
from src.infrastructure.persistence.db.schema import \
    NotificationOutbox as OutboxModel

DEFAULT_MAX_ATTEMPTS = 5


class OutboxRepository:
    """
    Entry store for the notification outbox.

    Every state-changing query here is a single ``UPDATE ... RETURNING``
    statement, so selection and mutation can never be split by another
    worker.
    """

    def __init__(self, session: AsyncSession, *, auto_commit: bool = True) -> None:
        self._session = session
        self._auto_commit = auto_commit

    async def add_entry(
        self,
        entry: NewOutboxEntry,
        *,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> OutboxEntry:
        """
        New PENDING entry, eligible immediately.
        """
        now = utcnow()
        model = OutboxModel(
            user_id=entry.user_id,
            channel=entry.channel.value,
            destination=entry.destination,
            subject=entry.subject,
            payload=json.dumps(entry.payload),
            status=OutboxStatus.PENDING,
            attempts=0,
            max_attempts=entry.max_attempts or default_max_attempts,
            next_retry_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            self._session.add(model)
            await self._commit()
            await self._session.refresh(model)
            return self._to_entity(model)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError("Failed to add outbox entry") from exc

    async def recover_stale(self, cutoff: datetime, *, now: Optional[datetime] = None) -> List[UUID]:
        """
        Moves PROCESSING entries untouched since ``cutoff`` back to FAILED.
        """
        stmt = (
            update(OutboxModel)
            .where(
                OutboxModel.status == OutboxStatus.PROCESSING,
                OutboxModel.updated_at < cutoff,
            )
            .values(status=OutboxStatus.FAILED, updated_at=now or utcnow())
            .returning(OutboxModel.id)
            .execution_options(synchronize_session=False)
        )
        return await self._update_returning_ids(stmt, "Failed to recover stale outbox entries")

    async def claim_batch(self, limit: int, *, now: Optional[datetime] = None) -> List[OutboxEntry]:
        """
        Leases up to ``limit`` due entries to the caller.

        Rows locked by a concurrent claim are skipped, so overlapping
        callers always receive disjoint batches.
        """
        now = now or utcnow()
        eligible: Select[Any] = (
            select(OutboxModel.id)
            .where(
                OutboxModel.status.in_(tuple(CLAIMABLE_STATUSES)),
                OutboxModel.next_retry_at <= now,
                OutboxModel.attempts < OutboxModel.max_attempts,
            )
            .order_by(OutboxModel.next_retry_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        table = OutboxModel.__table__
        stmt = (
            update(table)
            .where(table.c.id.in_(eligible.scalar_subquery()))
            .values(status=OutboxStatus.PROCESSING, updated_at=now)
            .returning(*table.c)
        )
        try:
            rows = (await self._session.execute(stmt)).all()
            entries = [self._to_entity(row) for row in rows]
            await self._commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError("Failed to claim outbox batch") from exc
        # RETURNING order is unspecified.
        entries.sort(key=lambda entry: entry.next_retry_at)
        return entries

    async def release_claimed(
        self,
        entry_ids: Sequence[UUID],
        *,
        now: Optional[datetime] = None,
    ) -> List[UUID]:
        """
        Returns still-PROCESSING entries among ``entry_ids`` to FAILED.
        """
        if not entry_ids:
            return []
        stmt = (
            update(OutboxModel)
            .where(
                OutboxModel.id.in_(list(entry_ids)),
                OutboxModel.status == OutboxStatus.PROCESSING,
            )
            .values(status=OutboxStatus.FAILED, updated_at=now or utcnow())
            .returning(OutboxModel.id)
            .execution_options(synchronize_session=False)
        )
        return await self._update_returning_ids(stmt, "Failed to release claimed outbox entries")

    async def update_entry(
        self,
        entry_id: UUID,
        values: Mapping[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Single-row write of ``values``; raises if the row does not exist.
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == entry_id)
            .values(**dict(values), updated_at=now or utcnow())
            .returning(OutboxModel.id)
            .execution_options(synchronize_session=False)
        )
        try:
            updated = (await self._session.execute(stmt)).scalar_one_or_none()
            if updated is None:
                await self._session.rollback()
                raise EntryNotFoundError(entry_id=entry_id)
            await self._commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError("Failed to update outbox entry") from exc

    async def get_entry(self, entry_id: UUID) -> Optional[OutboxEntry]:
        try:
            stmt: Select[Any] = select(OutboxModel).where(OutboxModel.id == entry_id)
            model = (
                await self._session.execute(stmt.execution_options(populate_existing=True))
            ).scalar_one_or_none()
            return self._to_entity(model) if model else None
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to get outbox entry") from exc

    async def count_by_status(self) -> Dict[OutboxStatus, int]:
        try:
            stmt: Select[Any] = (
                select(OutboxModel.status, func.count(OutboxModel.id))
                .group_by(OutboxModel.status)
            )
            rows = (await self._session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to count outbox entries") from exc
        counts = {status: 0 for status in OutboxStatus}
        for status, total in rows:
            counts[OutboxStatus(status)] = int(total)
        return counts

    async def _update_returning_ids(self, stmt: Any, error_message: str) -> List[UUID]:
        try:
            ids = list((await self._session.execute(stmt)).scalars().all())
            await self._commit()
            return ids
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError(error_message) from exc

    async def _commit(self) -> None:
        if self._auto_commit:
            await self._session.commit()
        else:
            await self._session.flush()

    @staticmethod
    def _to_entity(model: Any) -> OutboxEntry:
        """
        Maps an ORM instance or a RETURNING row; both expose columns as
        attributes.
        """
        payload: Dict[str, Any] = json.loads(model.payload) if model.payload else {}
        return OutboxEntry(
            id=model.id,
            user_id=model.user_id,
            channel=model.channel,
            destination=model.destination,
            subject=model.subject,
            payload=payload,
            status=model.status,
            attempts=model.attempts,
            max_attempts=model.max_attempts,
            last_error=model.last_error,
            next_retry_at=model.next_retry_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
