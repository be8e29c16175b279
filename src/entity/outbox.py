from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Final, FrozenSet, Optional
from uuid import UUID


def utcnow() -> datetime:
    """
    Naive UTC timestamp, the format every outbox column is stored in.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OutboxStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    FAILED = "FAILED"
    DEAD = "DEAD"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class Channel(str, Enum):
    EMAIL = "EMAIL"
    WEBHOOK = "WEBHOOK"
    TELEGRAM = "TELEGRAM"
    BROWSER_PUSH = "BROWSER_PUSH"


class TransitionReason(str, Enum):
    CLAIMED = "claimed_for_delivery"
    DELIVERY_SUCCESS = "delivery_success"
    DELIVERY_FAILURE = "delivery_failure"
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"
    CRASH_RECOVERY = "crash_recovery_stuck"
    RUN_TIMEOUT = "run_timeout_release"


TERMINAL_STATUSES: Final[FrozenSet[OutboxStatus]] = frozenset(
    {OutboxStatus.SENT, OutboxStatus.DEAD}
)

CLAIMABLE_STATUSES: Final[FrozenSet[OutboxStatus]] = frozenset(
    {OutboxStatus.PENDING, OutboxStatus.FAILED}
)

# PENDING/FAILED -> PROCESSING happens only inside the claim statement.
ALLOWED_TRANSITIONS: Final[Dict[OutboxStatus, FrozenSet[OutboxStatus]]] = {
    OutboxStatus.PENDING: frozenset({OutboxStatus.PROCESSING}),
    OutboxStatus.FAILED: frozenset({OutboxStatus.PROCESSING}),
    OutboxStatus.PROCESSING: frozenset(
        {OutboxStatus.SENT, OutboxStatus.FAILED, OutboxStatus.DEAD}
    ),
    OutboxStatus.SENT: frozenset(),
    OutboxStatus.DEAD: frozenset(),
}


@dataclass(slots=True)
class OutboxEntry:
    id: UUID
    channel: str
    destination: str
    subject: Optional[str]
    payload: Dict[str, Any]
    status: OutboxStatus
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    next_retry_at: datetime
    created_at: datetime
    updated_at: datetime
    user_id: Optional[str] = None


@dataclass(slots=True)
class NewOutboxEntry:
    channel: Channel
    destination: str
    payload: Dict[str, Any] = field(default_factory=dict)
    subject: Optional[str] = None
    user_id: Optional[str] = None
    max_attempts: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    entry_id: UUID
    from_status: OutboxStatus
    to_status: OutboxStatus
    reason: str


@dataclass(slots=True)
class RunSummary:
    sent: int = 0
    failed: int = 0
    dead: int = 0
    claimed: int = 0
    recovered: int = 0
    released: int = 0


@dataclass(slots=True)
class OutboxStats:
    counts: Dict[OutboxStatus, int]
    dead_backlog: bool

    def count(self, status: OutboxStatus) -> int:
        return self.counts.get(status, 0)
