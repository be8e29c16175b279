"""
Container for the usecase layer.
"""

from dependency_injector import containers, providers

from src.delivery.config import OutboxConfig
from src.delivery.outbox_processor import OutboxProcessor
from src.infrastructure.persistence.uow import UnitOfWork
from src.usecase.outbox import NotificationUseCase


class UsecaseContainer(containers.DeclarativeContainer):

    uow: providers.Dependency[UnitOfWork] = providers.Dependency()
    outbox_processor: providers.Dependency[OutboxProcessor] = providers.Dependency()
    outbox_config: providers.Dependency[OutboxConfig] = providers.Dependency()

    notification_usecase = providers.Factory(
        NotificationUseCase,
        uow=uow,
        processor=outbox_processor,
        config=outbox_config,
    )
