"""
Plan upgrades with credit for the unused part of the current cycle.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from common.core.clock import utcnow
from common.core.exceptions import UpstreamError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import (
    BillingCycle,
    BillingErrorCode,
    CreditType,
    LedgerSource,
)
from packages.billing.models.domain.results import BillingResult
from packages.billing.models.domain.trial import ProrationCredit, UpgradeCheckout
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.credit_ledger_service import CreditLedgerService
from packages.billing.services.pricing import cycle_price, derive_cycle_from_dates
from packages.customers.services.customer_service import CustomerService

logger = get_logger(__name__)

UPGRADE_ROLLOVER_REASON = "UPGRADE_ROLLOVER"


class ProrationService:
    """Quotes and starts upgrades. Activation itself happens on the webhook."""

    def __init__(self):
        self.subscription_repo = SubscriptionRepository()
        self.plan_repo = PlanRepository()
        self.customer_service = CustomerService()
        self.ledger_service = CreditLedgerService()
        self.payment = get_payment_provider()

    @trace_span
    async def compute_prepaid_credit(
        self, customer_id: int, now: Optional[datetime] = None
    ) -> ProrationCredit:
        """
        Unused value of the active subscription, in paise.

        Every step floors: whole days left, per-day price over a 30 or 365
        day cycle, and the product of the two.
        """
        subscription = await self.subscription_repo.get_active_for_customer(
            customer_id
        )
        if not subscription:
            return ProrationCredit()

        now = now or utcnow()
        if subscription.expires_at <= now:
            return ProrationCredit(source_subscription_id=subscription.id)

        plan = await self.plan_repo.get(subscription.plan_id)
        if not plan:
            return ProrationCredit(source_subscription_id=subscription.id)

        cycle = derive_cycle_from_dates(subscription.started_at, subscription.expires_at)
        price = cycle_price(plan.code, cycle, base_price=plan.price)
        days_left = (subscription.expires_at - now) // timedelta(days=1)
        per_day = price // cycle.days

        return ProrationCredit(
            credit_amount=per_day * days_left,
            days_left=days_left,
            per_day=per_day,
            source_subscription_id=subscription.id,
            source_plan_code=plan.code,
        )

    @trace_span
    async def create_upgrade_subscription(
        self,
        customer_id: int,
        email: str,
        new_plan_code: str,
        billing_cycle: BillingCycle,
        contact: Optional[str] = None,
    ) -> BillingResult[UpgradeCheckout]:
        """
        Open a gateway subscription for the new plan and roll the unused credit
        of the current one into prepaid.

        Nothing is activated or canceled here; that happens when the gateway
        reports the first charge.
        """
        customer = await self.customer_service.resolve(customer_id, email)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        plan = await self.plan_repo.get_by_code(new_plan_code)
        if not plan:
            return BillingResult.fail(
                BillingErrorCode.PLAN_NOT_FOUND, f"Unknown plan {new_plan_code}"
            )

        amount = cycle_price(plan.code, billing_cycle, base_price=plan.price)
        credit = await self.compute_prepaid_credit(customer.id)

        notes = {
            "planCode": plan.code,
            "userId": str(customer.id),
            "email": customer.email,
            "billingCycle": billing_cycle.value,
            "creditAmount": str(credit.credit_amount),
        }
        if credit.source_subscription_id is not None:
            notes["upgradeFromSubscriptionId"] = str(credit.source_subscription_id)

        try:
            gateway_plan = await self.payment.create_subscription_plan(
                plan_code=plan.code,
                name=plan.name,
                amount=amount,
                currency=plan.currency,
                cycle=billing_cycle,
            )
            gateway_customer = await self.payment.create_customer(
                name=customer.full_name or customer.email,
                email=customer.email,
                contact=contact or customer.contact,
            )
            gateway_subscription = await self.payment.create_subscription(
                plan_id=gateway_plan.id,
                customer_id=gateway_customer.id,
                notes=notes,
            )
        except UpstreamError as e:
            logger.error(
                f"Upgrade checkout failed at the gateway: {e}",
                extra={"customer_id": customer.id, "plan_code": plan.code},
            )
            return BillingResult.fail(BillingErrorCode.UPSTREAM_FAILURE, str(e))

        rolled_over = Decimal(0)
        if credit.credit_amount > 0:
            rollover = await self.ledger_service.add_credits(
                customer.email,
                CreditType.PREPAID,
                credit.credit_amount,
                UPGRADE_ROLLOVER_REASON,
                reference_id=gateway_subscription.id,
                source=LedgerSource.SYSTEM,
            )
            if rollover.success:
                rolled_over = Decimal(credit.credit_amount)

        logger.info(
            f"Started upgrade to {plan.code}",
            extra={
                "customer_id": customer.id,
                "plan_code": plan.code,
                "billing_cycle": billing_cycle.value,
                "credit_amount": credit.credit_amount,
                "provider_subscription_id": gateway_subscription.id,
            },
        )
        return BillingResult.ok(
            UpgradeCheckout(
                provider_subscription_id=gateway_subscription.id,
                provider_plan_id=gateway_plan.id,
                provider_customer_id=gateway_customer.id,
                short_url=gateway_subscription.short_url,
                plan_code=plan.code,
                billing_cycle=billing_cycle.value,
                amount=amount,
                credit_amount=credit.credit_amount,
                rolled_over=rolled_over,
            )
        )
