"""
Interfaces of the external transports the channel dispatcher calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, TypedDict


@dataclass(slots=True)
class MailResult:
    id: Optional[str] = None
    error: Optional[str] = None


class PushMessage(TypedDict, total=False):
    title: str
    body: str
    url: str
    tag: str


class MailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> MailResult: ...


class WebhookSender(Protocol):
    async def fire(self, url: str, payload: Dict[str, Any]) -> None: ...


class ChatAlertSender(Protocol):
    async def send(self, bot_token: str, chat_id: str, message: str) -> bool: ...


class PushSender(Protocol):
    async def send(self, user_id: str, message: PushMessage) -> None: ...
