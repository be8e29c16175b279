from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


class AppError(Exception):
    """
    Base application error.

    Used for every expected, controlled failure scenario in the service.
    """
    def __init__(self, message: str = "", *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context or {}

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message or self.__class__.__name__


class RepositoryError(AppError):
    """
    Base error for the persistence/repository layer.
    """


class UnitOfWorkError(AppError):
    """
    Raised when a unit of work transaction fails.
    """


@dataclass
class EntryNotFoundError(RepositoryError):
    """
    Raised when a write targets an outbox entry that does not exist.
    """

    entry_id: Any
    message: str = "Outbox entry not found"

    def __post_init__(self) -> None:
        self.context = {"entry_id": str(self.entry_id)}


class DeliveryError(AppError):
    """
    Base error for channel delivery.
    """


class ChannelDeliveryError(DeliveryError):
    """
    The transport reported that delivery failed.
    """


class ChannelNotConfiguredError(DeliveryError):
    """
    The transport or the entry lacks the configuration needed to deliver.
    """


@dataclass
class UnknownChannelError(DeliveryError):
    """
    Raised when an entry names a channel the dispatcher has no sender for.
    """

    channel: Any
    message: str = "Unknown outbox channel"

    def __post_init__(self) -> None:
        self.context = {"channel": str(self.channel)}


@dataclass
class InvalidTransitionError(AppError):
    """
    Raised when a status change is not an edge of the outbox state machine.
    """

    entry_id: Any
    from_status: Any
    to_status: Any
    message: str = "Outbox status transition is not allowed"

    def __post_init__(self) -> None:
        self.context = {
            "entry_id": str(self.entry_id),
            "from_status": str(self.from_status),
            "to_status": str(self.to_status),
        }


class OutboxRunError(AppError):
    """
    Run-level failure: the store was unavailable during recovery, claim,
    release or a transition write.
    """


class TriggerError(AppError):
    """
    Base error for the run trigger endpoint.
    """


class TriggerAuthError(TriggerError):
    """
    Missing or invalid trigger credentials.
    """


class TriggerMisconfiguredError(TriggerError):
    """
    The trigger secret is not configured on the server.
    """
