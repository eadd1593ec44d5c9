"""Payment providers - orders, customers, subscriptions and signatures."""

from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.factory import get_payment_provider

__all__ = [
    "PaymentProviderInterface",
    "get_payment_provider",
]
