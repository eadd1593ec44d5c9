"""Billing providers - abstracted external platform integrations."""

from packages.billing.providers.notifications.factory import get_notification_sender
from packages.billing.providers.payment.factory import get_payment_provider

__all__ = [
    "get_notification_sender",
    "get_payment_provider",
]
