"""
Container for the delivery engine.
"""

from dependency_injector import containers, providers

from src.delivery.channels import (BrowserPushChannel, ChannelDispatcher,
                                   EmailChannel, TelegramChannel,
                                   WebhookChannel)
from src.delivery.config import OutboxConfig
from src.delivery.outbox_processor import OutboxProcessor
from src.delivery.senders import (ChatAlertSender, MailSender, PushSender,
                                  WebhookSender)
from src.delivery.transitions import TransitionLog
from src.entity.outbox import Channel
from src.infrastructure.persistence.uow import UnitOfWork


class DeliveryContainer(containers.DeclarativeContainer):

    config = providers.Configuration()

    uow: providers.Dependency[UnitOfWork] = providers.Dependency()
    mail_sender: providers.Dependency[MailSender] = providers.Dependency()
    webhook_sender: providers.Dependency[WebhookSender] = providers.Dependency()
    chat_alert_sender: providers.Dependency[ChatAlertSender] = providers.Dependency()
    push_sender: providers.Dependency[PushSender] = providers.Dependency()

    outbox_config = providers.Singleton(
        OutboxConfig,
        batch_size=config.OUTBOX_BATCH_SIZE,
        run_timeout_seconds=config.OUTBOX_RUN_TIMEOUT_SECONDS,
        stale_after_seconds=config.OUTBOX_STALE_AFTER_SECONDS,
        backoff_base_seconds=config.OUTBOX_BACKOFF_BASE_SECONDS,
        max_backoff_seconds=config.OUTBOX_MAX_BACKOFF_SECONDS,
        dispatch_concurrency=config.OUTBOX_DISPATCH_CONCURRENCY,
        default_max_attempts=config.OUTBOX_DEFAULT_MAX_ATTEMPTS,
        dead_backlog_threshold=config.OUTBOX_DEAD_BACKLOG_THRESHOLD,
    )

    channel_senders = providers.Dict(
        {
            Channel.EMAIL: providers.Factory(
                EmailChannel,
                mail=mail_sender,
                default_subject=config.DEFAULT_EMAIL_SUBJECT,
            ),
            Channel.WEBHOOK: providers.Factory(WebhookChannel, webhook=webhook_sender),
            Channel.TELEGRAM: providers.Factory(TelegramChannel, chat=chat_alert_sender),
            Channel.BROWSER_PUSH: providers.Factory(
                BrowserPushChannel,
                push=push_sender,
                default_title=config.PUSH_DEFAULT_TITLE,
            ),
        }
    )

    channel_dispatcher = providers.Factory(
        ChannelDispatcher,
        senders=channel_senders,
    )

    transition_log = providers.Singleton(TransitionLog)

    outbox_processor = providers.Factory(
        OutboxProcessor,
        uow=uow,
        dispatcher=channel_dispatcher,
        transition_log=transition_log,
        config=outbox_config,
    )
