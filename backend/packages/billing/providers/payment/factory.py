"""
Factory for getting payment provider instance.
"""

from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.razorpay_payment import RazorpayPaymentProvider


def get_payment_provider() -> PaymentProviderInterface:
    """
    Get payment provider instance based on configuration.

    Only Razorpay is wired up today; services depend on the interface so a
    second gateway can be added here.

    Returns:
        PaymentProviderInterface: Configured payment provider
    """
    return RazorpayPaymentProvider()
