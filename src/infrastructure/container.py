"""
Container for the infrastructure layer: database and transports.
"""

from dependency_injector import containers, providers

from src.infrastructure.persistence.db import Database
from src.infrastructure.persistence.uow import UnitOfWork
from src.infrastructure.transports.http_clients import (HttpMailSender,
                                                        HttpPushSender,
                                                        HttpWebhookSender,
                                                        TelegramBotSender)


def get_db_url(
    pg_user: str,
    pg_password: str,
    pg_host: str,
    pg_port: str,
    pg_db: str,
) -> str:
    return f"postgresql+asyncpg://{pg_user}:{pg_password}@{pg_host}:{pg_port}/{pg_db}"


class InfrastructureContainer(containers.DeclarativeContainer):

    config = providers.Configuration()

    db = providers.Singleton(
        Database,
        db_url=providers.Callable(
            get_db_url,
            pg_user=config.DB_USER,
            pg_password=config.DB_PASS,
            pg_host=config.DB_HOST,
            pg_port=config.DB_PORT,
            pg_db=config.DB_NAME,
        ),
    )

    uow = providers.Singleton(
        UnitOfWork,
        db=db,
    )

    mail_sender = providers.Singleton(
        HttpMailSender,
        api_url=config.MAIL_API_URL,
        api_key=config.MAIL_API_KEY,
        from_address=config.MAIL_FROM,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )

    webhook_sender = providers.Singleton(
        HttpWebhookSender,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )

    chat_alert_sender = providers.Singleton(
        TelegramBotSender,
        api_url=config.TELEGRAM_API_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )

    push_sender = providers.Singleton(
        HttpPushSender,
        relay_url=config.PUSH_RELAY_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
