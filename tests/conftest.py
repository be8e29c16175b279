from __future__ import annotations

import asyncio
import contextlib
import os
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.delivery.channels import (BrowserPushChannel, ChannelDispatcher,
                                   EmailChannel, TelegramChannel,
                                   WebhookChannel)
from src.delivery.config import OutboxConfig
from src.delivery.outbox_processor import OutboxProcessor
from src.delivery.senders import MailResult
from src.delivery.transitions import TransitionLog
from src.entity.outbox import (CLAIMABLE_STATUSES, Channel, NewOutboxEntry,
                               OutboxEntry, OutboxStats, OutboxStatus,
                               RunSummary)
from src.exceptions import EntryNotFoundError, RepositoryError
from src.main import create_app
from src.settings import settings

START = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class InMemoryOutboxStore:
    """
    Dict-backed stand-in for OutboxRepository with the same call surface.
    """

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self.entries: dict[UUID, OutboxEntry] = {}
        self.failing: set[str] = set()
        self.writes: list[tuple[UUID, dict[str, Any]]] = []
        self._clock = clock
        self._lock = asyncio.Lock()

    def add(self, **overrides: Any) -> OutboxEntry:
        now = self._clock()
        values: dict[str, Any] = {
            "id": uuid4(),
            "channel": Channel.WEBHOOK.value,
            "destination": "https://hooks.example.com/outbox",
            "subject": None,
            "payload": {},
            "status": OutboxStatus.PENDING,
            "attempts": 0,
            "max_attempts": 5,
            "last_error": None,
            "next_retry_at": now,
            "created_at": now,
            "updated_at": now,
            "user_id": None,
        }
        values.update(overrides)
        entry = OutboxEntry(**values)
        self.entries[entry.id] = entry
        return replace(entry)

    def get(self, entry_id: UUID) -> OutboxEntry:
        return self.entries[entry_id]

    async def add_entry(
        self,
        entry: NewOutboxEntry,
        *,
        default_max_attempts: int = 5,
    ) -> OutboxEntry:
        self._check("add_entry")
        return self.add(
            channel=entry.channel.value,
            destination=entry.destination,
            subject=entry.subject,
            payload=dict(entry.payload),
            user_id=entry.user_id,
            max_attempts=entry.max_attempts or default_max_attempts,
        )

    async def recover_stale(self, cutoff: datetime, *, now: Optional[datetime] = None) -> list[UUID]:
        self._check("recover_stale")
        async with self._lock:
            recovered = []
            for entry in self.entries.values():
                if entry.status is OutboxStatus.PROCESSING and entry.updated_at < cutoff:
                    entry.status = OutboxStatus.FAILED
                    entry.updated_at = now or self._clock()
                    recovered.append(entry.id)
            return recovered

    async def claim_batch(self, limit: int, *, now: Optional[datetime] = None) -> list[OutboxEntry]:
        self._check("claim_batch")
        now = now or self._clock()
        async with self._lock:
            # Give a concurrent claim the chance to interleave.
            await asyncio.sleep(0)
            eligible = sorted(
                (
                    entry
                    for entry in self.entries.values()
                    if entry.status in CLAIMABLE_STATUSES
                    and entry.next_retry_at <= now
                    and entry.attempts < entry.max_attempts
                ),
                key=lambda entry: entry.next_retry_at,
            )[:limit]
            for entry in eligible:
                entry.status = OutboxStatus.PROCESSING
                entry.updated_at = now
            return [replace(entry) for entry in eligible]

    async def release_claimed(self, entry_ids: list[UUID], *, now: Optional[datetime] = None) -> list[UUID]:
        self._check("release_claimed")
        async with self._lock:
            released = []
            for entry_id in entry_ids:
                entry = self.entries.get(entry_id)
                if entry is not None and entry.status is OutboxStatus.PROCESSING:
                    entry.status = OutboxStatus.FAILED
                    entry.updated_at = now or self._clock()
                    released.append(entry_id)
            return released

    async def update_entry(
        self,
        entry_id: UUID,
        values: dict[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> None:
        self._check("update_entry")
        entry = self.entries.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id=entry_id)
        self.writes.append((entry_id, dict(values)))
        for name, value in values.items():
            setattr(entry, name, value)
        entry.updated_at = now or self._clock()

    async def count_by_status(self) -> dict[OutboxStatus, int]:
        self._check("count_by_status")
        counts = {status: 0 for status in OutboxStatus}
        for entry in self.entries.values():
            counts[entry.status] += 1
        return counts

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise RepositoryError(f"{operation} failed: store unreachable")


class FakeUnitOfWork:

    def __init__(self, store: InMemoryOutboxStore) -> None:
        self.store = store

    @contextlib.asynccontextmanager
    async def init(self):
        yield SimpleNamespace(outbox=self.store)

    @contextlib.asynccontextmanager
    async def autocommit(self):
        yield SimpleNamespace(outbox=self.store)


class RecordingMailSender:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.result = MailResult(id="msg_1")

    async def send(self, to: str, subject: str, html: str) -> MailResult:
        self.calls.append((to, subject, html))
        return self.result


class RecordingWebhookSender:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.error: Optional[Exception] = None
        self.on_call: Optional[Callable[[], None]] = None

    async def fire(self, url: str, payload: dict[str, Any]) -> None:
        self.calls.append((url, payload))
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error


class RecordingChatSender:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.result = True

    async def send(self, bot_token: str, chat_id: str, message: str) -> bool:
        self.calls.append((bot_token, chat_id, message))
        return self.result


class RecordingPushSender:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.error: Optional[Exception] = None

    async def send(self, user_id: str, message: dict[str, Any]) -> None:
        self.calls.append((user_id, dict(message)))
        if self.error is not None:
            raise self.error


@dataclass
class Senders:
    mail: RecordingMailSender = field(default_factory=RecordingMailSender)
    webhook: RecordingWebhookSender = field(default_factory=RecordingWebhookSender)
    chat: RecordingChatSender = field(default_factory=RecordingChatSender)
    push: RecordingPushSender = field(default_factory=RecordingPushSender)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture()
def store(clock: FakeClock) -> InMemoryOutboxStore:
    return InMemoryOutboxStore(clock)


@pytest.fixture()
def senders() -> Senders:
    return Senders()


@pytest.fixture()
def dispatcher(senders: Senders) -> ChannelDispatcher:
    return ChannelDispatcher(
        {
            Channel.EMAIL: EmailChannel(senders.mail, default_subject="Notification"),
            Channel.WEBHOOK: WebhookChannel(senders.webhook),
            Channel.TELEGRAM: TelegramChannel(senders.chat),
            Channel.BROWSER_PUSH: BrowserPushChannel(senders.push, default_title="Notification"),
        }
    )


@pytest.fixture()
def transition_log() -> TransitionLog:
    return TransitionLog()


@pytest.fixture()
def make_processor(
    store: InMemoryOutboxStore,
    dispatcher: ChannelDispatcher,
    transition_log: TransitionLog,
    clock: FakeClock,
    monotonic: FakeMonotonic,
) -> Callable[..., OutboxProcessor]:
    def _make(**config: Any) -> OutboxProcessor:
        return OutboxProcessor(
            uow=FakeUnitOfWork(store),
            dispatcher=dispatcher,
            transition_log=transition_log,
            config=OutboxConfig(**config),
            clock=clock,
            monotonic=monotonic,
        )

    return _make


class FakeNotificationUseCase:
    """
    Stub usecase for exercising the API handlers without a database.
    """

    def __init__(self) -> None:
        self.runs = 0
        self.summary = RunSummary(sent=2, failed=1, dead=1, claimed=4)
        self.error: Optional[Exception] = None
        self.stats = OutboxStats(
            counts={status: 0 for status in OutboxStatus},
            dead_backlog=False,
        )

    async def process_outbox(self) -> RunSummary:
        self.runs += 1
        if self.error is not None:
            raise self.error
        return self.summary

    async def get_stats(self) -> OutboxStats:
        return self.stats


@pytest.fixture()
def cron_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    secret = "test-cron-secret"
    monkeypatch.setattr(settings, "CRON_SECRET", secret)
    monkeypatch.setattr(settings, "REQUIRE_PLATFORM_TRIGGER_HEADER", False)
    return secret


@pytest.fixture()
def fake_notification_usecase() -> FakeNotificationUseCase:
    return FakeNotificationUseCase()


@pytest.fixture()
def api_client(fake_notification_usecase: FakeNotificationUseCase) -> TestClient:
    app = create_app()
    app.container.usecase.notification_usecase.override(
        providers.Object(fake_notification_usecase)
    )

    with TestClient(app) as client:
        yield client

    app.container.usecase.notification_usecase.reset_override()


@pytest.fixture()
def fake_uow(store: InMemoryOutboxStore) -> FakeUnitOfWork:
    return FakeUnitOfWork(store)
