from __future__ import annotations

import httpx
import pytest

from src.delivery.channels import ChannelDispatcher, WebhookChannel
from src.delivery.senders import MailResult
from src.entity.outbox import Channel


@pytest.mark.asyncio()
async def test_email_uses_subject_and_html(store, senders, dispatcher) -> None:
    entry = store.add(
        channel=Channel.EMAIL.value,
        destination="trader@example.com",
        subject="Your EA stopped",
        payload={"html": "<p>Check your terminal</p>"},
    )

    result = await dispatcher.dispatch(entry)

    assert result.success is True
    assert senders.mail.calls == [
        ("trader@example.com", "Your EA stopped", "<p>Check your terminal</p>")
    ]


@pytest.mark.asyncio()
async def test_email_falls_back_to_default_subject_and_empty_html(store, senders, dispatcher) -> None:
    entry = store.add(channel=Channel.EMAIL.value, destination="a@example.com")

    await dispatcher.dispatch(entry)

    assert senders.mail.calls == [("a@example.com", "Notification", "")]


@pytest.mark.asyncio()
async def test_email_sender_error_is_a_failure(store, senders, dispatcher) -> None:
    senders.mail.result = MailResult(error="rate limited")
    entry = store.add(channel=Channel.EMAIL.value, destination="a@example.com")

    result = await dispatcher.dispatch(entry)

    assert result.success is False
    assert result.error == "Channel delivery returned failure"


@pytest.mark.asyncio()
async def test_webhook_fires_payload(store, senders, dispatcher) -> None:
    entry = store.add(
        channel=Channel.WEBHOOK.value,
        destination="https://hooks.example.com/a",
        payload={"event": "trade.closed", "profit": 12.5},
    )

    result = await dispatcher.dispatch(entry)

    assert result.success is True
    assert senders.webhook.calls == [
        ("https://hooks.example.com/a", {"event": "trade.closed", "profit": 12.5})
    ]


@pytest.mark.asyncio()
async def test_webhook_exception_is_normalized(store, senders, dispatcher) -> None:
    senders.webhook.error = httpx.ConnectError("connection refused")
    entry = store.add(channel=Channel.WEBHOOK.value)

    result = await dispatcher.dispatch(entry)

    assert result.success is False
    assert result.error == "connection refused"


@pytest.mark.asyncio()
async def test_telegram_sends_with_token_and_message(store, senders, dispatcher) -> None:
    entry = store.add(
        channel=Channel.TELEGRAM.value,
        destination="123456",
        payload={"botToken": "bot-token", "message": "Drawdown alert"},
    )

    result = await dispatcher.dispatch(entry)

    assert result.success is True
    assert senders.chat.calls == [("bot-token", "123456", "Drawdown alert")]


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "payload",
    [{"message": "hi"}, {"botToken": "bot-token"}, {"botToken": "", "message": "hi"}],
)
async def test_telegram_incomplete_config_skips_sender(store, senders, dispatcher, payload) -> None:
    entry = store.add(channel=Channel.TELEGRAM.value, destination="1", payload=payload)

    result = await dispatcher.dispatch(entry)

    assert result.success is False
    assert senders.chat.calls == []


@pytest.mark.asyncio()
async def test_telegram_false_result_is_a_failure(store, senders, dispatcher) -> None:
    senders.chat.result = False
    entry = store.add(
        channel=Channel.TELEGRAM.value,
        destination="1",
        payload={"botToken": "t", "message": "m"},
    )

    result = await dispatcher.dispatch(entry)

    assert result.success is False


@pytest.mark.asyncio()
async def test_push_builds_message_for_owner(store, senders, dispatcher) -> None:
    entry = store.add(
        channel=Channel.BROWSER_PUSH.value,
        destination="user_42",
        user_id="user_42",
        payload={"title": "Trade opened", "body": "EURUSD buy", "url": "/app/live"},
    )

    result = await dispatcher.dispatch(entry)

    assert result.success is True
    assert senders.push.calls == [
        ("user_42", {"title": "Trade opened", "body": "EURUSD buy", "url": "/app/live"})
    ]


@pytest.mark.asyncio()
async def test_push_defaults_and_destination_fallback(store, senders, dispatcher) -> None:
    entry = store.add(channel=Channel.BROWSER_PUSH.value, destination="user_7", payload={"tag": "t1"})

    await dispatcher.dispatch(entry)

    assert senders.push.calls == [
        ("user_7", {"title": "Notification", "body": "", "tag": "t1"})
    ]


@pytest.mark.asyncio()
async def test_push_exception_is_a_failure(store, senders, dispatcher) -> None:
    senders.push.error = RuntimeError("subscription expired")
    entry = store.add(channel=Channel.BROWSER_PUSH.value, destination="user_7")

    result = await dispatcher.dispatch(entry)

    assert result.success is False
    assert result.error == "subscription expired"


@pytest.mark.asyncio()
async def test_unknown_channel_fails_without_calling_senders(store, senders, dispatcher) -> None:
    entry = store.add(channel="SMS", destination="+15550100")

    result = await dispatcher.dispatch(entry)

    assert result.success is False
    assert "SMS" in result.error
    assert not any([senders.mail.calls, senders.webhook.calls, senders.chat.calls, senders.push.calls])


def test_dispatcher_requires_a_sender_per_channel(senders) -> None:
    with pytest.raises(ValueError, match="EMAIL"):
        ChannelDispatcher({Channel.WEBHOOK: WebhookChannel(senders.webhook)})
