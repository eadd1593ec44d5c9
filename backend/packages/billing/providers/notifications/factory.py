"""
Factory for getting the notification sender.
"""

from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)
from packages.billing.providers.notifications.logging_sender import (
    LoggingNotificationSender,
)


def get_notification_sender() -> NotificationSenderInterface:
    """
    Get notification sender instance.

    Returns:
        NotificationSenderInterface: Configured sender
    """
    return LoggingNotificationSender()
