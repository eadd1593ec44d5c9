"""
Free-trial eligibility.

Eligibility is tracked per email, not per customer row, and only ever moves
from unused to used.
"""

from datetime import datetime, timedelta
from typing import Optional

from common.core.clock import utcnow
from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.subscription import Subscription
from packages.billing.repositories.eligible_email_repository import (
    EligibleEmailRepository,
)
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.pricing import is_trial_plan
from packages.customers.services.customer_service import CustomerService

logger = get_logger(__name__)


def _normalize(email: str) -> str:
    return email.strip().lower()


class TrialService:
    """Free-trial eligibility oracle."""

    def __init__(self):
        self.eligible_email_repo = EligibleEmailRepository()
        self.subscription_repo = SubscriptionRepository()
        self.customer_service = CustomerService()

    @trace_span
    async def check_eligibility(self, email: str) -> bool:
        """
        Whether email may still start a free trial.

        A verified customer without a row gets one created lazily as
        "unused". Unknown emails are eligible but nothing is persisted.
        """
        email = _normalize(email)
        row = await self.eligible_email_repo.get_by_email(email)
        if row:
            return not row.is_used

        customer = await self.customer_service.get_by_email(email)
        if not customer or not customer.is_verified:
            return True

        row, created = await self.eligible_email_repo.insert_if_absent(
            email, is_used=False
        )
        if created:
            logger.info(
                "Created trial eligibility row",
                extra={"customer_id": customer.id},
            )
        return not row.is_used

    @trace_span
    async def mark_email_as_used(self, email: str) -> None:
        """Consume the trial for email. Idempotent and never reversible."""
        await self.eligible_email_repo.mark_used(_normalize(email))
        logger.info("Marked trial as used", extra={"email": _normalize(email)})

    @trace_span
    async def is_eligible_for_free_trial(self, email: str) -> bool:
        """Stricter check used at checkout: no subscription history at all."""
        customer = await self.customer_service.get_by_email(email)
        if customer and await self.subscription_repo.count_for_customer(customer.id):
            return False
        return await self.check_eligibility(email)

    @trace_span
    async def is_in_trial_window(
        self,
        subscription: Subscription,
        plan: Optional[Plan],
        email: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Whether consumption for this subscription runs in free-trial mode:
        trial-eligible plan, trial already consumed by this email, and still
        within the trial window counted from the subscription start.
        """
        if not plan or not is_trial_plan(plan.code):
            return False

        row = await self.eligible_email_repo.get_by_email(_normalize(email))
        if not row or not row.is_used:
            return False

        now = now or utcnow()
        return now - subscription.started_at <= timedelta(days=settings.trial_days)
