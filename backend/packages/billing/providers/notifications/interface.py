"""
Interface for billing notifications.

Senders are fire-and-log: callers never let a notification failure affect
billing state, so implementations may raise freely.
"""

from abc import ABC, abstractmethod
from typing import Optional


class NotificationSenderInterface(ABC):
    """Abstract interface for customer-facing billing notifications."""

    @abstractmethod
    async def send_payment_success(
        self,
        email: str,
        plan_name: str,
        amount: int,
        is_free_trial: bool = False,
    ) -> None:
        """
        Notify a customer that a payment went through.

        Args:
            email: Recipient
            plan_name: Display name of the plan paid for
            amount: Amount charged, in paise
            is_free_trial: True for the trial authorization charge
        """
        pass

    @abstractmethod
    async def send_payment_failure(
        self,
        email: str,
        amount: int,
        error_code: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    async def send_subscription_cancellation(self, email: str, plan_name: str) -> None:
        pass
