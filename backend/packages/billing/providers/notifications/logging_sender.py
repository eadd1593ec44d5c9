"""
Logging notification sender.

Email templating and delivery live outside this service; this sender records
what would have been sent so the events show up in logs and traces.
"""

from typing import Optional

from common.core.otel_axiom_exporter import get_logger, log_span_event
from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)

logger = get_logger(__name__)


class LoggingNotificationSender(NotificationSenderInterface):
    async def send_payment_success(
        self,
        email: str,
        plan_name: str,
        amount: int,
        is_free_trial: bool = False,
    ) -> None:
        log_span_event(
            "Payment success notification",
            {
                "email": email,
                "plan_name": plan_name,
                "amount": amount,
                "is_free_trial": is_free_trial,
            },
        )

    async def send_payment_failure(
        self,
        email: str,
        amount: int,
        error_code: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> None:
        log_span_event(
            "Payment failure notification",
            {
                "email": email,
                "amount": amount,
                "error_code": error_code or "",
                "error_description": error_description or "",
            },
        )

    async def send_subscription_cancellation(self, email: str, plan_name: str) -> None:
        log_span_event(
            "Subscription cancellation notification",
            {"email": email, "plan_name": plan_name},
        )
