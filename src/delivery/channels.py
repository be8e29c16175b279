from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from src.delivery.senders import (ChatAlertSender, MailSender, PushMessage,
                                  PushSender, WebhookSender)
from src.entity.outbox import Channel, OutboxEntry
from src.exceptions import UnknownChannelError
from src.logger import logger


@dataclass(frozen=True, slots=True)
class DispatchResult:
    success: bool
    error: Optional[str] = None


class ChannelSender:
    """
    Delivers one entry over one channel.

    ``deliver`` returns False for a delivery that did not happen; raising
    is treated the same way by the dispatcher.
    """

    channel: Channel

    async def deliver(self, entry: OutboxEntry) -> bool:
        raise NotImplementedError


class EmailChannel(ChannelSender):
    channel = Channel.EMAIL

    def __init__(self, mail: MailSender, *, default_subject: str = "Notification") -> None:
        self._mail = mail
        self._default_subject = default_subject

    async def deliver(self, entry: OutboxEntry) -> bool:
        html = entry.payload.get("html") or ""
        result = await self._mail.send(
            entry.destination,
            entry.subject or self._default_subject,
            str(html),
        )
        if result.error:
            logger.warning(
                "Mail sender rejected outbox entry %s: %s",
                entry.id,
                result.error,
            )
            return False
        return True


class WebhookChannel(ChannelSender):
    channel = Channel.WEBHOOK

    def __init__(self, webhook: WebhookSender) -> None:
        self._webhook = webhook

    async def deliver(self, entry: OutboxEntry) -> bool:
        await self._webhook.fire(entry.destination, entry.payload)
        return True


class TelegramChannel(ChannelSender):
    channel = Channel.TELEGRAM

    def __init__(self, chat: ChatAlertSender) -> None:
        self._chat = chat

    async def deliver(self, entry: OutboxEntry) -> bool:
        bot_token = entry.payload.get("botToken")
        message = entry.payload.get("message")
        if not bot_token or not message:
            logger.warning(
                "Telegram outbox entry %s is missing botToken or message",
                entry.id,
            )
            return False
        return bool(await self._chat.send(str(bot_token), entry.destination, str(message)))


class BrowserPushChannel(ChannelSender):
    channel = Channel.BROWSER_PUSH

    def __init__(self, push: PushSender, *, default_title: str = "Notification") -> None:
        self._push = push
        self._default_title = default_title

    async def deliver(self, entry: OutboxEntry) -> bool:
        payload = entry.payload
        message: PushMessage = {
            "title": str(payload.get("title") or self._default_title),
            "body": str(payload.get("body") or ""),
        }
        if payload.get("url"):
            message["url"] = str(payload["url"])
        if payload.get("tag"):
            message["tag"] = str(payload["tag"])
        await self._push.send(entry.user_id or entry.destination, message)
        return True


class ChannelDispatcher:
    """
    Routes a claimed entry to the sender of its channel.

    Every failure mode (exception, ``False`` result, unknown channel) comes
    back as a failed ``DispatchResult`` so that it takes the retry path.
    """

    def __init__(self, senders: Mapping[Channel, ChannelSender]) -> None:
        missing = [channel.value for channel in Channel if channel not in senders]
        if missing:
            raise ValueError(f"No sender configured for channels: {', '.join(missing)}")
        self._senders = dict(senders)

    async def dispatch(self, entry: OutboxEntry) -> DispatchResult:
        try:
            sender = self._resolve(entry)
        except UnknownChannelError as exc:
            logger.warning(
                "Unknown outbox channel",
                extra={"channel": entry.channel, "outbox_id": str(entry.id)},
            )
            return DispatchResult(success=False, error=f"{exc}: {entry.channel}")

        try:
            delivered = await sender.deliver(entry)
        except Exception as exc:
            logger.warning(
                "Delivery of outbox entry %s over %s raised: %s",
                entry.id,
                entry.channel,
                exc,
            )
            return DispatchResult(success=False, error=str(exc) or type(exc).__name__)

        if not delivered:
            return DispatchResult(success=False, error="Channel delivery returned failure")
        return DispatchResult(success=True)

    def _resolve(self, entry: OutboxEntry) -> ChannelSender:
        try:
            channel = Channel(entry.channel)
        except ValueError:
            raise UnknownChannelError(channel=entry.channel) from None
        return self._senders[channel]
