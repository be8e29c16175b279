from pydantic import BaseModel

from src.entity.outbox import OutboxStats, OutboxStatus, RunSummary


class ProcessOutboxResponse(BaseModel):
    success: bool = True
    sent: int
    failed: int
    dead: int

    @staticmethod
    def from_summary(summary: RunSummary) -> "ProcessOutboxResponse":
        return ProcessOutboxResponse(
            sent=summary.sent,
            failed=summary.failed,
            dead=summary.dead,
        )


class OutboxStatsResponse(BaseModel):
    pending: int
    processing: int
    sent: int
    failed: int
    dead: int
    dead_backlog: bool

    @staticmethod
    def from_stats(stats: OutboxStats) -> "OutboxStatsResponse":
        return OutboxStatsResponse(
            pending=stats.count(OutboxStatus.PENDING),
            processing=stats.count(OutboxStatus.PROCESSING),
            sent=stats.count(OutboxStatus.SENT),
            failed=stats.count(OutboxStatus.FAILED),
            dead=stats.count(OutboxStatus.DEAD),
            dead_backlog=stats.dead_backlog,
        )
