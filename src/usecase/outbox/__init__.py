from src.usecase.outbox.notification_usecase import NotificationUseCase

__all__ = ["NotificationUseCase"]
