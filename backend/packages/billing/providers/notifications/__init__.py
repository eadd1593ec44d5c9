"""Notification providers - payment and cancellation notices."""

from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)
from packages.billing.providers.notifications.factory import get_notification_sender

__all__ = [
    "NotificationSenderInterface",
    "get_notification_sender",
]
