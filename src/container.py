"""
Root container wiring the sub-containers together.
"""

from dependency_injector import containers, providers

from src.delivery.container import DeliveryContainer
from src.infrastructure.container import InfrastructureContainer
from src.usecase.container import UsecaseContainer


class Container(containers.DeclarativeContainer):

    config = providers.Configuration()
    wiring_config = containers.WiringConfiguration(
        modules=["src.api.handlers.outbox.cron_handler"],
    )

    infrastructure = providers.Container(
        InfrastructureContainer,
        config=config,
    )

    delivery = providers.Container(
        DeliveryContainer,
        config=config,
        uow=infrastructure.uow,
        mail_sender=infrastructure.mail_sender,
        webhook_sender=infrastructure.webhook_sender,
        chat_alert_sender=infrastructure.chat_alert_sender,
        push_sender=infrastructure.push_sender,
    )

    usecase = providers.Container(
        UsecaseContainer,
        uow=infrastructure.uow,
        outbox_processor=delivery.outbox_processor,
        outbox_config=delivery.outbox_config,
    )
