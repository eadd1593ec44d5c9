"""
Service for managing subscriptions.
"""

from datetime import datetime
from typing import List, Optional

from common.core.best_effort import best_effort
from common.core.clock import utcnow
from common.core.exceptions import UpstreamError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.locking.factory import get_lock_provider
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.models.domain.subscription import (
    AutopayStatus,
    SubscriberDetail,
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.enums import (
    BillingCycle,
    BillingErrorCode,
    PaymentProvider,
    SubscriptionStatus,
)
from packages.billing.models.domain.results import BillingResult
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.services.credit_ledger_service import (
    CreditLedgerService,
    activation_key,
)
from packages.billing.services.customer_lock import customer_lock
from packages.billing.services.pricing import (
    add_billing_cycle,
    cycle_price,
    derive_cycle_from_dates,
)
from packages.billing.services.trial_service import TrialService
from packages.customers.models.domain.customer import AccountTier
from packages.customers.services.customer_service import CustomerService

logger = get_logger(__name__)

# Gateway statuses after which the mandate can no longer charge
RESTRICTED_PROVIDER_STATUSES = frozenset({"cancelled", "halted", "paused"})


class SubscriptionService:
    """Service for subscription management."""

    def __init__(self):
        self.subscription_repo = SubscriptionRepository()
        self.plan_repo = PlanRepository()
        self.customer_service = CustomerService()
        self.trial_service = TrialService()
        self.ledger_service = CreditLedgerService()
        self.payment = get_payment_provider()
        self.lock_provider = get_lock_provider()

    @trace_span
    async def create_subscription(
        self,
        customer_id: int,
        plan_id: int,
        provider: PaymentProvider = PaymentProvider.RAZORPAY,
        provider_subscription_id: Optional[str] = None,
        provider_payment_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
        cycle: BillingCycle = BillingCycle.MONTHLY,
        auto_renew: bool = True,
    ) -> Subscription:
        """
        Create an ACTIVE subscription and promote the customer to CUSTOMER.

        The period ends one calendar month (or year) after started_at, with
        the day clamped to the end of a shorter month.
        """
        started_at = started_at or utcnow()
        create_model = SubscriptionCreateModel(
            customer_id=customer_id,
            plan_id=plan_id,
            status=SubscriptionStatus.ACTIVE,
            started_at=started_at,
            expires_at=add_billing_cycle(started_at, cycle),
            auto_renew=auto_renew,
            payment_provider=provider,
            provider_subscription_id=provider_subscription_id,
            provider_payment_id=provider_payment_id,
        )

        if provider_subscription_id:
            subscription, created = await self.subscription_repo.create_if_absent(
                create_model
            )
        else:
            subscription = await self.subscription_repo.create(create_model)
            created = True

        await self.customer_service.set_account_tier(customer_id, AccountTier.CUSTOMER)

        if created:
            logger.info(
                f"Created subscription {subscription.id} for customer {customer_id}",
                extra={
                    "customer_id": customer_id,
                    "subscription_id": subscription.id,
                    "billing_cycle": cycle.value,
                    "auto_renew": auto_renew,
                },
            )
        return subscription

    @trace_span
    async def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        return await self.subscription_repo.get(subscription_id)

    @trace_span
    async def get_active_subscription(self, customer_id: int) -> Optional[Subscription]:
        return await self.subscription_repo.get_active_for_customer(customer_id)

    @trace_span
    async def get_by_provider_subscription_id(
        self, provider_subscription_id: str
    ) -> Optional[Subscription]:
        return await self.subscription_repo.get_by_provider_subscription_id(
            provider_subscription_id
        )

    @trace_span
    async def cancel(
        self, subscription_id: int, cancel_on_provider: bool = True
    ) -> BillingResult[Subscription]:
        """
        Cancel a subscription.

        The gateway cancel is attempted first and only logged on failure;
        the local row becomes CANCELED regardless. Cancelling an already
        CANCELED row changes nothing.
        """
        subscription = await self.subscription_repo.get(subscription_id)
        if not subscription:
            return BillingResult.fail(BillingErrorCode.SUBSCRIPTION_NOT_FOUND)

        if subscription.status == SubscriptionStatus.CANCELED:
            return BillingResult.ok(subscription, already_processed=True)

        if (
            cancel_on_provider
            and subscription.provider_subscription_id
            and subscription.payment_provider == PaymentProvider.RAZORPAY
        ):
            await best_effort(
                self.payment.cancel_subscription(subscription.provider_subscription_id),
                "gateway subscription cancel",
                subscription_id=subscription.id,
                provider_subscription_id=subscription.provider_subscription_id,
            )

        canceled = await self.subscription_repo.update(
            subscription.id,
            SubscriptionUpdateModel(
                status=SubscriptionStatus.CANCELED,
                cancel_at=utcnow(),
                auto_renew=False,
            ),
        )
        logger.info(
            f"Canceled subscription {subscription.id}",
            extra={
                "subscription_id": subscription.id,
                "customer_id": subscription.customer_id,
            },
        )
        return BillingResult.ok(canceled)

    @trace_span
    async def cancel_other_active(
        self, customer_id: int, keep_subscription_id: int
    ) -> List[Subscription]:
        """Cancel every ACTIVE row of the customer except the one to keep."""
        canceled = []
        for other in await self.subscription_repo.list_active_for_customer(customer_id):
            if other.id == keep_subscription_id:
                continue
            result = await self.cancel(other.id)
            if result.success and not result.already_processed:
                canceled.append(result.data)
        if canceled:
            logger.info(
                f"Auto-canceled {len(canceled)} superseded subscription(s)",
                extra={
                    "customer_id": customer_id,
                    "kept_subscription_id": keep_subscription_id,
                },
            )
        return canceled

    def derive_cycle_from_dates(
        self, started_at: datetime, expires_at: datetime
    ) -> BillingCycle:
        return derive_cycle_from_dates(started_at, expires_at)

    @trace_span
    async def list_active_subscriptions(self) -> List[SubscriberDetail]:
        """Admin listing of every ACTIVE subscription with plan details."""
        now = utcnow()
        details = []
        for subscription in await self.subscription_repo.list_active():
            plan = await self.plan_repo.get(subscription.plan_id)
            customer = await self.customer_service.get_customer(
                subscription.customer_id
            )
            cycle = derive_cycle_from_dates(
                subscription.started_at, subscription.expires_at
            )
            is_trial = False
            if plan and customer:
                is_trial = await self.trial_service.is_in_trial_window(
                    subscription, plan, customer.email, now=now
                )
            details.append(
                SubscriberDetail(
                    subscription_id=subscription.id,
                    customer_id=subscription.customer_id,
                    email=customer.email if customer else None,
                    full_name=customer.full_name if customer else None,
                    plan_code=plan.code if plan else None,
                    plan_name=plan.name if plan else None,
                    billing_cycle=cycle.value,
                    amount=cycle_price(plan.code, cycle, plan.price) if plan else None,
                    started_at=subscription.started_at,
                    expires_at=subscription.expires_at,
                    days_remaining=subscription.days_remaining(now),
                    auto_renew=subscription.auto_renew,
                    is_trial=is_trial,
                    provider_subscription_id=subscription.provider_subscription_id,
                )
            )
        return details

    @trace_span
    async def verify_autopay_status(self, customer_id: int) -> AutopayStatus:
        """
        Check the gateway mandate behind the customer's active subscription.

        A gateway error leaves should_restrict False; access is only
        restricted on a status the gateway actually reported.
        """
        subscription = await self.subscription_repo.get_active_for_customer(
            customer_id
        )
        if not subscription:
            return AutopayStatus(has_subscription=False)

        if (
            not subscription.provider_subscription_id
            or subscription.payment_provider != PaymentProvider.RAZORPAY
        ):
            return AutopayStatus(has_subscription=True)

        try:
            remote = await self.payment.fetch_subscription(
                subscription.provider_subscription_id
            )
        except UpstreamError as e:
            logger.warning(
                f"Could not fetch autopay status: {e}",
                extra={
                    "customer_id": customer_id,
                    "provider_subscription_id": subscription.provider_subscription_id,
                },
            )
            return AutopayStatus(has_subscription=True)

        provider_status = (remote.status or "").lower() or None
        return AutopayStatus(
            has_subscription=True,
            provider_status=provider_status,
            should_restrict=provider_status in RESTRICTED_PROVIDER_STATUSES,
        )

    @trace_span
    async def activate_fallback(
        self,
        customer_id: int,
        plan_code: str,
        provider_subscription_id: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        provider_payment_id: Optional[str] = None,
    ) -> BillingResult[Subscription]:
        """
        Client-side activation after the checkout widget confirmed payment.

        Covers a delayed webhook: the new row is created first, then any
        previous ACTIVE row is canceled. A provider subscription id that is
        already linked returns the linked row flagged already_processed.
        """
        customer = await self.customer_service.get_customer(customer_id)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        plan = await self.plan_repo.get_by_code(plan_code)
        if not plan:
            return BillingResult.fail(BillingErrorCode.PLAN_NOT_FOUND)

        async with customer_lock(self.lock_provider, customer.id) as locked:
            if not locked:
                return BillingResult.fail(BillingErrorCode.LOCK_UNAVAILABLE)

            # the activation webhook may have linked it while we waited
            existing = await self.subscription_repo.get_by_provider_subscription_id(
                provider_subscription_id
            )
            if existing:
                return BillingResult.ok(existing, already_processed=True)

            subscription = await self.create_subscription(
                customer_id=customer.id,
                plan_id=plan.id,
                provider=PaymentProvider.RAZORPAY,
                provider_subscription_id=provider_subscription_id,
                provider_payment_id=provider_payment_id,
                cycle=billing_cycle,
            )
            if subscription.customer_id != customer.id:
                # provider id already belongs to someone else
                return BillingResult.fail(
                    BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                    "Subscription is linked to a different customer",
                )

            await self.cancel_other_active(customer.id, subscription.id)
            if provider_payment_id:
                await self.ledger_service.sync_subscription(
                    customer.id,
                    subscription_id=subscription.id,
                    idempotency_key=activation_key(
                        provider_subscription_id, provider_payment_id
                    ),
                )
        return BillingResult.ok(subscription)
