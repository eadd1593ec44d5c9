"""
Checkout helpers: one-time orders, recurring subscriptions with an optional
deferred-start trial, and client-side payment signature checks.
"""

from datetime import timedelta
from typing import Optional
from uuid import uuid4

from common.core.clock import utcnow
from common.core.config import settings
from common.core.exceptions import UpstreamError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import BillingCycle, BillingErrorCode
from packages.billing.models.domain.gateway import GatewayPayment
from packages.billing.models.domain.results import BillingResult
from packages.billing.models.domain.trial import OrderCheckout, RecurringCheckout
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.services.pricing import cycle_price, is_trial_plan
from packages.billing.services.trial_service import TrialService
from packages.customers.services.customer_service import CustomerService

logger = get_logger(__name__)


class CheckoutService:
    def __init__(self):
        self.plan_repo = PlanRepository()
        self.customer_service = CustomerService()
        self.trial_service = TrialService()
        self.payment = get_payment_provider()

    @trace_span
    async def create_one_time_order(
        self, customer_id: int, plan_code: str
    ) -> BillingResult[OrderCheckout]:
        """Gateway order for one monthly period of the plan."""
        customer = await self.customer_service.get_customer(customer_id)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        plan = await self.plan_repo.get_by_code(plan_code)
        if not plan:
            return BillingResult.fail(BillingErrorCode.PLAN_NOT_FOUND)

        amount = cycle_price(plan.code, BillingCycle.MONTHLY, base_price=plan.price)
        try:
            order = await self.payment.create_order(
                amount=amount,
                currency=plan.currency,
                receipt=f"rcpt_{customer.id}_{uuid4().hex[:12]}",
                notes={
                    "email": customer.email,
                    "planCode": plan.code,
                    "userId": str(customer.id),
                },
            )
        except UpstreamError as e:
            return BillingResult.fail(BillingErrorCode.UPSTREAM_FAILURE, str(e))

        return BillingResult.ok(
            OrderCheckout(
                order_id=order.id,
                amount=order.amount,
                currency=order.currency,
                plan_code=plan.code,
                key_id=settings.razorpay_key_id,
            )
        )

    @trace_span
    async def create_recurring_checkout(
        self,
        customer_id: int,
        plan_code: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        contact: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> BillingResult[RecurringCheckout]:
        """
        Gateway customer, plan and subscription for a recurring checkout.

        For the trial plan and a trial-eligible email the first charge is
        deferred by the trial length; the mandate is still authorized now.
        """
        customer = await self.customer_service.get_customer(customer_id)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        plan = await self.plan_repo.get_by_code(plan_code)
        if not plan:
            return BillingResult.fail(BillingErrorCode.PLAN_NOT_FOUND)

        amount = cycle_price(plan.code, billing_cycle, base_price=plan.price)

        trial_days = 0
        if is_trial_plan(plan.code) and await self.trial_service.is_eligible_for_free_trial(
            customer.email
        ):
            trial_days = settings.trial_days
        start_at = utcnow() + timedelta(days=trial_days) if trial_days else None

        notes = {
            "email": customer.email,
            "planCode": plan.code,
            "userId": str(customer.id),
            "billingCycle": billing_cycle.value,
        }
        if trial_days:
            notes["trialDays"] = str(trial_days)

        try:
            gateway_plan = await self.payment.create_subscription_plan(
                plan_code=plan.code,
                name=plan.name,
                amount=amount,
                currency=plan.currency,
                cycle=billing_cycle,
            )
            gateway_customer = await self.payment.create_customer(
                name=full_name or customer.full_name or customer.email,
                email=customer.email,
                contact=contact or customer.contact,
            )
            gateway_subscription = await self.payment.create_subscription(
                plan_id=gateway_plan.id,
                customer_id=gateway_customer.id,
                notes=notes,
                start_at=start_at,
            )
        except UpstreamError as e:
            logger.error(
                f"Recurring checkout failed at the gateway: {e}",
                extra={"customer_id": customer.id, "plan_code": plan.code},
            )
            return BillingResult.fail(BillingErrorCode.UPSTREAM_FAILURE, str(e))

        logger.info(
            f"Created recurring checkout for {plan.code}",
            extra={
                "customer_id": customer.id,
                "plan_code": plan.code,
                "trial_days": trial_days,
                "provider_subscription_id": gateway_subscription.id,
            },
        )
        return BillingResult.ok(
            RecurringCheckout(
                provider_subscription_id=gateway_subscription.id,
                provider_plan_id=gateway_plan.id,
                provider_customer_id=gateway_customer.id,
                short_url=gateway_subscription.short_url,
                plan_code=plan.code,
                billing_cycle=billing_cycle.value,
                amount=amount,
                trial_days=trial_days,
                start_at=start_at,
                key_id=settings.razorpay_key_id,
            )
        )

    def verify_payment_signature(
        self, order_id: str, payment_id: str, signature: Optional[str]
    ) -> bool:
        return self.payment.verify_payment_signature(order_id, payment_id, signature)

    @trace_span
    async def get_payment_details(self, payment_id: str) -> BillingResult[GatewayPayment]:
        """Look a payment up at the gateway, e.g. to confirm a client-reported capture."""
        try:
            payment = await self.payment.fetch_payment(payment_id)
        except UpstreamError as e:
            return BillingResult.fail(BillingErrorCode.UPSTREAM_FAILURE, str(e))
        return BillingResult.ok(payment)
