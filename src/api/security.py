from __future__ import annotations

import hmac
from typing import Mapping

from src.exceptions import TriggerAuthError, TriggerMisconfiguredError
from src.logger import logger
from src.settings import settings


def verify_cron_trigger(headers: Mapping[str, str]) -> None:
    """
    Checks the bearer secret (constant-time) and, when enabled, the
    platform scheduler header. Must run before any store access.
    """
    secret = settings.CRON_SECRET
    if not secret:
        logger.error("CRON_SECRET not configured")
        raise TriggerMisconfiguredError("Server misconfigured")

    authorization = headers.get("authorization")
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(
        authorization.encode("utf-8"), expected.encode("utf-8")
    ):
        raise TriggerAuthError("Unauthorized")

    if settings.REQUIRE_PLATFORM_TRIGGER_HEADER and not headers.get(
        settings.PLATFORM_TRIGGER_HEADER
    ):
        raise TriggerAuthError(
            "Unauthorized",
            context={"missing_header": settings.PLATFORM_TRIGGER_HEADER},
        )
