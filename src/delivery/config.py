from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class OutboxConfig:
    """
    Tunables of one delivery run, fixed at construction.
    """

    batch_size: int = 50
    run_timeout_seconds: float = 55.0
    stale_after_seconds: float = 600.0
    backoff_base_seconds: float = 30.0
    max_backoff_seconds: float = 86400.0
    dispatch_concurrency: int = 1
    default_max_attempts: int = 5
    dead_backlog_threshold: int = 20

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")
        if self.dispatch_concurrency < 1:
            raise ValueError("dispatch_concurrency must be positive")
        if self.default_max_attempts < 1:
            raise ValueError("default_max_attempts must be positive")
        if self.max_backoff_seconds <= 0:
            raise ValueError("max_backoff_seconds must be positive")

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_after_seconds)

    def backoff_delay(self, attempts: int) -> timedelta:
        """
        Delay before the next attempt: ``base * 2 ** attempts``, capped at
        ``max_backoff_seconds``.
        """
        # Bounded exponent keeps the float product finite.
        seconds = self.backoff_base_seconds * (2 ** min(attempts, 62))
        return timedelta(seconds=min(seconds, self.max_backoff_seconds))
