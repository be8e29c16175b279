"""
httpx-backed clients for the delivery channels.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from src.delivery.senders import MailResult, PushMessage
from src.exceptions import ChannelDeliveryError, ChannelNotConfiguredError
from src.logger import logger


def _raise_for_status(response: httpx.Response, target: str) -> None:
    if response.status_code >= 400:
        raise ChannelDeliveryError(
            f"{target} rejected delivery ({response.status_code})",
            context={"status_code": response.status_code},
        )


class HttpMailSender:
    """
    Sends mail through a JSON HTTP mail API.

    Transport problems are reported in ``MailResult.error`` instead of being
    raised.
    """

    def __init__(
        self,
        api_url: Optional[str],
        api_key: Optional[str],
        *,
        from_address: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._from_address = from_address
        self._timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> MailResult:
        if not self._api_url or not self._api_key:
            return MailResult(error="Mail API is not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._api_url,
                    json={
                        "from": self._from_address,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Mail API request failed: %s", exc)
            return MailResult(error=str(exc) or type(exc).__name__)

        if response.status_code >= 400:
            return MailResult(error=f"Mail API responded with {response.status_code}")
        # Accepted; the message id is informational only.
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        message_id = body.get("id") if isinstance(body, dict) else None
        return MailResult(id=message_id)


class HttpWebhookSender:

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def fire(self, url: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload)
        _raise_for_status(response, "Webhook receiver")


class TelegramBotSender:

    def __init__(
        self,
        api_url: str = "https://api.telegram.org",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def send(self, bot_token: str, chat_id: str, message: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._api_url}/bot{bot_token}/sendMessage",
                    json={"chat_id": chat_id, "text": message, "parse_mode": "HTML"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Telegram request for chat %s failed: %s", chat_id, exc)
            return False
        if response.status_code >= 400:
            logger.warning(
                "Telegram rejected message for chat %s (%s)",
                chat_id,
                response.status_code,
            )
            return False
        return True


class HttpPushSender:
    """
    Forwards browser push messages to a push relay service.
    """

    def __init__(
        self,
        relay_url: Optional[str],
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._relay_url = relay_url
        self._timeout = timeout
        self._transport = transport

    async def send(self, user_id: str, message: PushMessage) -> None:
        if not self._relay_url:
            raise ChannelNotConfiguredError("Push relay is not configured")
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._relay_url,
                json={"user_id": user_id, "notification": dict(message)},
            )
        _raise_for_status(response, "Push relay")
