from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DB_HOST: str = "localhost"
    DB_PORT: str = "5432"
    DB_NAME: str = "outbox"
    DB_USER: str = "postgres"
    DB_PASS: str = "postgres"

    CRON_SECRET: Optional[str] = None
    REQUIRE_PLATFORM_TRIGGER_HEADER: bool = False
    PLATFORM_TRIGGER_HEADER: str = "x-vercel-cron"

    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_RUN_TIMEOUT_SECONDS: float = 55.0
    OUTBOX_STALE_AFTER_SECONDS: float = 600.0
    OUTBOX_BACKOFF_BASE_SECONDS: float = 30.0
    OUTBOX_MAX_BACKOFF_SECONDS: float = 86400.0
    OUTBOX_DISPATCH_CONCURRENCY: int = 1
    OUTBOX_DEFAULT_MAX_ATTEMPTS: int = 5
    OUTBOX_DEAD_BACKLOG_THRESHOLD: int = 20
    OUTBOX_POLL_INTERVAL_SECONDS: float = 60.0

    HTTP_TIMEOUT_SECONDS: float = 10.0
    MAIL_API_URL: Optional[str] = None
    MAIL_API_KEY: Optional[str] = None
    MAIL_FROM: str = "notifications@localhost"
    DEFAULT_EMAIL_SUBJECT: str = "Notification"
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    PUSH_RELAY_URL: Optional[str] = None
    PUSH_DEFAULT_TITLE: str = "Notification"

    model_config = SettingsConfigDict(
        env_file=".env.example",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
