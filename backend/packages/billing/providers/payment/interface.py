"""
Interface for payment providers.

Abstracts the payment gateway's REST API away from billing services.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Union

from packages.billing.models.domain.enums import BillingCycle
from packages.billing.models.domain.gateway import (
    GatewayCustomer,
    GatewayOrder,
    GatewayPayment,
    GatewayPlan,
    GatewaySubscription,
)


class PaymentProviderInterface(ABC):
    """Abstract interface for payment providers."""

    @abstractmethod
    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        """
        Create a one-time payment order.

        Args:
            amount: Amount in paise
            currency: ISO currency code
            receipt: Our reference for the order
            notes: Metadata echoed back on the payment webhook
        """
        pass

    @abstractmethod
    async def create_customer(
        self,
        name: str,
        email: str,
        contact: Optional[str] = None,
    ) -> GatewayCustomer:
        """
        Create a customer, or return the existing one with the same email.
        """
        pass

    @abstractmethod
    async def create_subscription_plan(
        self,
        plan_code: str,
        name: str,
        amount: int,
        currency: str,
        cycle: BillingCycle,
    ) -> GatewayPlan:
        """Create a gateway plan charging amount once per cycle."""
        pass

    @abstractmethod
    async def create_subscription(
        self,
        plan_id: str,
        customer_id: str,
        notes: Optional[dict] = None,
        start_at: Optional[datetime] = None,
    ) -> GatewaySubscription:
        """
        Create a recurring subscription on a gateway plan.

        Args:
            start_at: First charge date; used to defer billing past a trial
        """
        pass

    @abstractmethod
    async def cancel_subscription(
        self, subscription_id: str, at_cycle_end: bool = False
    ) -> GatewaySubscription:
        """
        Cancel a subscription on the gateway.

        Args:
            at_cycle_end: Keep the mandate running until the paid period ends
                instead of stopping it now
        """
        pass

    @abstractmethod
    async def fetch_subscription(self, subscription_id: str) -> GatewaySubscription:
        pass

    @abstractmethod
    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        pass

    @abstractmethod
    def verify_webhook_signature(
        self, body: Union[str, bytes], signature: Optional[str]
    ) -> bool:
        """Check the webhook signature header against the raw body."""
        pass

    @abstractmethod
    def verify_payment_signature(
        self, order_id: str, payment_id: str, signature: Optional[str]
    ) -> bool:
        """Check the checkout callback signature for a one-time payment."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the payment backend is reachable with our credentials.
        """
        pass
