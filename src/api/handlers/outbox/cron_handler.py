from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.api.schemas.response_schemas.schemas import (OutboxStatsResponse,
                                                      ProcessOutboxResponse)
from src.api.security import verify_cron_trigger
from src.container import Container
from src.exceptions import (AppError, OutboxRunError, RepositoryError,
                            TriggerAuthError, TriggerMisconfiguredError)
from src.logger import logger
from src.usecase.outbox import NotificationUseCase

router = APIRouter(
    prefix="/api/cron",
    tags=["Outbox"],
)


def _map_app_error_to_http(exc: AppError) -> tuple[int, str]:
    if isinstance(exc, TriggerAuthError):
        return status.HTTP_401_UNAUTHORIZED, "Unauthorized"
    if isinstance(exc, TriggerMisconfiguredError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "Server misconfigured"
    if isinstance(exc, OutboxRunError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "Processing failed"
    if isinstance(exc, RepositoryError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error"
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"


def _raise_http_from_app_error(operation: str, exc: AppError) -> None:
    status_code, detail = _map_app_error_to_http(exc)

    log_extra = {
        "error_type": type(exc).__name__,
        **getattr(exc, "context", {}),
    }

    message = "Application error in %s: %s"

    if 400 <= status_code < 500:
        logger.warning(message, operation, str(exc), extra=log_extra)
    else:
        logger.error(message, operation, str(exc), extra=log_extra)

    raise HTTPException(status_code=status_code, detail=detail) from exc


@router.api_route(
    "/process-outbox",
    methods=["GET", "POST"],
    response_model=ProcessOutboxResponse,
)
@inject
async def process_outbox(
    request: Request,
    uc: NotificationUseCase = Depends(Provide[Container.usecase.notification_usecase]),
) -> ProcessOutboxResponse:
    """
    Scheduler trigger: runs one delivery pass over the outbox.
    :param request: incoming request, its headers carry the trigger credentials.
    :param uc: usecase with the outbox logic.
    :return: ProcessOutboxResponse with the run counts.
    """
    try:
        verify_cron_trigger(request.headers)
        summary = await uc.process_outbox()
    except AppError as exc:
        _raise_http_from_app_error("process_outbox", exc)

    return ProcessOutboxResponse.from_summary(summary)


@router.get(
    "/outbox-stats",
    response_model=OutboxStatsResponse,
)
@inject
async def outbox_stats(
    request: Request,
    uc: NotificationUseCase = Depends(Provide[Container.usecase.notification_usecase]),
) -> OutboxStatsResponse:
    """
    Entry counts per status and the dead-letter backlog flag.
    """
    try:
        verify_cron_trigger(request.headers)
        stats = await uc.get_stats()
    except AppError as exc:
        _raise_http_from_app_error("outbox_stats", exc)

    return OutboxStatsResponse.from_stats(stats)
