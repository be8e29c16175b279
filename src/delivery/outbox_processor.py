from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Callable, Iterator, List, Sequence

from src.delivery.channels import ChannelDispatcher
from src.delivery.config import OutboxConfig
from src.delivery.timeout_guard import TimeoutGuard
from src.delivery.transitions import TransitionEngine, TransitionLog
from src.entity.outbox import (OutboxEntry, OutboxStatus, RunSummary,
                               TransitionReason, utcnow)
from src.exceptions import OutboxRunError, RepositoryError, UnitOfWorkError
from src.infrastructure.persistence.repositories.outbox import OutboxRepository
from src.infrastructure.persistence.uow import UnitOfWork
from src.logger import logger


class OutboxProcessor:
    """
    One delivery run: recovery sweep, claim, dispatch, transition.

    Overlapping runs are safe: the claim statement hands every run a
    disjoint batch.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        dispatcher: ChannelDispatcher,
        transition_log: TransitionLog,
        config: OutboxConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._uow = uow
        self._dispatcher = dispatcher
        self._transition_log = transition_log
        self._config = config
        self._clock = clock
        self._monotonic = monotonic

    async def run_forever(self, interval: float) -> None:
        """
        Runs back to back, ``interval`` seconds apart.
        """
        while True:
            try:
                await self.run_once()
            except OutboxRunError:
                # Already logged; the next run starts with a recovery sweep.
                pass
            except Exception as exc:
                logger.exception(
                    "Unexpected outbox run failure: %s",
                    exc,
                    extra={"error_type": type(exc).__name__},
                )
            await asyncio.sleep(interval)

    async def run_once(self) -> RunSummary:
        guard = TimeoutGuard(self._config.run_timeout_seconds, clock=self._monotonic)
        summary = RunSummary()
        try:
            async with self._uow.autocommit() as repositories:
                await self._process(repositories.outbox, guard, summary)
        except (RepositoryError, UnitOfWorkError) as exc:
            logger.error(
                "Outbox processing failed: %s",
                exc,
                extra={"error_type": type(exc).__name__, **exc.context},
            )
            raise OutboxRunError("Outbox processing failed", context=exc.context) from exc

        logger.info(
            "Outbox processing completed",
            extra={
                "sent": summary.sent,
                "failed": summary.failed,
                "dead": summary.dead,
                "total": summary.claimed,
                "recovered": summary.recovered,
                "released": summary.released,
                "duration_ms": int(guard.elapsed * 1000),
            },
        )
        return summary

    async def _process(
        self,
        store: OutboxRepository,
        guard: TimeoutGuard,
        summary: RunSummary,
    ) -> None:
        transitions = TransitionEngine(
            store,
            self._transition_log,
            self._config,
            clock=self._clock,
        )

        now = self._clock()
        recovered = await store.recover_stale(now - self._config.stale_after, now=now)
        transitions.record_bulk(
            recovered,
            OutboxStatus.PROCESSING,
            OutboxStatus.FAILED,
            TransitionReason.CRASH_RECOVERY.value,
        )
        summary.recovered = len(recovered)

        claimed = await store.claim_batch(self._config.batch_size, now=self._clock())
        if not claimed:
            return
        summary.claimed = len(claimed)
        transitions.record_claims(claimed)
        claimed_ids = [entry.id for entry in claimed]

        for group in self._groups(claimed):
            if guard.expired():
                released = await store.release_claimed(claimed_ids, now=self._clock())
                transitions.record_bulk(
                    released,
                    OutboxStatus.PROCESSING,
                    OutboxStatus.FAILED,
                    TransitionReason.RUN_TIMEOUT.value,
                )
                summary.released = len(released)
                logger.warning(
                    "Outbox run exceeded its budget, released %d entries",
                    len(released),
                    extra={"elapsed_ms": int(guard.elapsed * 1000)},
                )
                break
            await self._deliver_group(group, transitions, summary)

    async def _deliver_group(
        self,
        group: Sequence[OutboxEntry],
        transitions: TransitionEngine,
        summary: RunSummary,
    ) -> None:
        if len(group) == 1:
            await self._deliver(group[0], transitions, summary)
            return

        results = await asyncio.gather(
            *(self._deliver(entry, transitions, summary) for entry in group),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _deliver(
        self,
        entry: OutboxEntry,
        transitions: TransitionEngine,
        summary: RunSummary,
    ) -> None:
        result = await self._dispatcher.dispatch(entry)
        if result.success:
            await transitions.complete_delivery(entry)
            summary.sent += 1
            return

        status = await transitions.fail_delivery(entry, result.error)
        if status is OutboxStatus.DEAD:
            summary.dead += 1
        else:
            summary.failed += 1

    def _groups(self, entries: List[OutboxEntry]) -> Iterator[List[OutboxEntry]]:
        size = self._config.dispatch_concurrency
        for start in range(0, len(entries), size):
            yield entries[start:start + size]


async def main() -> None:
    """
    Runs the processor as a standalone worker process, as an alternative
    to the HTTP trigger.
    """
    from src.container import Container
    from src.settings import settings

    container = Container()
    container.config.from_pydantic(settings)

    processor = container.delivery.outbox_processor()
    await processor.run_forever(settings.OUTBOX_POLL_INTERVAL_SECONDS)


if __name__ == "__main__":
    asyncio.run(main())
