from __future__ import annotations

from src.delivery.config import OutboxConfig
from src.delivery.outbox_processor import OutboxProcessor
from src.entity.outbox import (NewOutboxEntry, OutboxEntry, OutboxStats,
                               OutboxStatus, RunSummary)
from src.infrastructure.persistence.uow import UnitOfWork


class NotificationUseCase:
    """
    Entry point for producers, the run trigger and dead-letter inspection.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        processor: OutboxProcessor,
        config: OutboxConfig,
    ) -> None:
        self._uow = uow
        self._processor = processor
        self._config = config

    async def enqueue_notification(self, entry: NewOutboxEntry) -> OutboxEntry:
        """
        Queues a notification; it is delivered by a later run.
        """
        async with self._uow.init() as repositories:
            return await repositories.outbox.add_entry(
                entry,
                default_max_attempts=self._config.default_max_attempts,
            )

    async def process_outbox(self) -> RunSummary:
        return await self._processor.run_once()

    async def get_stats(self) -> OutboxStats:
        """
        Counts per status; ``dead_backlog`` flags a DEAD pile that needs an
        operator.
        """
        async with self._uow.autocommit() as repositories:
            counts = await repositories.outbox.count_by_status()
        dead = counts.get(OutboxStatus.DEAD, 0)
        return OutboxStats(
            counts=counts,
            dead_backlog=dead > self._config.dead_backlog_threshold,
        )
