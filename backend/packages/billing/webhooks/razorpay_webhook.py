"""
Razorpay webhook handler.

Deliveries are at-least-once and may arrive out of order, so every handler
tolerates replay: subscription rows are keyed by the gateway subscription
id, ledger resets by an activation idempotency key, and cancellation of an
already canceled row is a no-op. Nothing here retries; the gateway
redelivers on a non-2xx response.
"""

import json
from typing import Any, Optional

from fastapi import Request, HTTPException, status

from common.core.best_effort import best_effort
from common.core.clock import utcnow
from common.core.config import settings
from common.core.exceptions import InvalidWebhookPayloadError
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.providers.locking.factory import get_lock_provider
from packages.billing.models.domain.enums import (
    BillingCycle,
    BillingErrorCode,
    PaymentProvider,
    SubscriptionStatus,
)
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.razorpay_webhooks import (
    PaymentCapturedEvent,
    PaymentFailedEvent,
    RazorpayEvent,
    RazorpayWebhookType,
    SubscriptionAuthorizedEvent,
    SubscriptionCancelledEvent,
    SubscriptionChargedEvent,
    decode_event,
)
from packages.billing.models.domain.results import BillingResult
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionUpdateModel,
)
from packages.billing.providers.notifications.factory import get_notification_sender
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.repositories.ledger_repository import LedgerEntryRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.credit_ledger_service import (
    ACTIVATION_REASON,
    RENEWAL_REASON,
    CreditLedgerService,
    activation_key,
)
from packages.billing.services.customer_lock import customer_lock
from packages.billing.services.plans_service import PlansService
from packages.billing.services.pricing import (
    add_billing_cycle,
    cycle_price,
    infer_plan_code,
    is_trial_plan,
    parse_cycle,
)
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.trial_service import TrialService
from packages.customers.models.domain.customer import AccountTier
from packages.customers.services.customer_service import CustomerService

logger = get_logger(__name__)


class WebhookReconciler:
    """Applies decoded gateway events to subscriptions and the ledger."""

    def __init__(self):
        self.subscription_service = SubscriptionService()
        self.subscription_repo = SubscriptionRepository()
        self.ledger_repo = LedgerEntryRepository()
        self.ledger_service = CreditLedgerService()
        self.trial_service = TrialService()
        self.plans_service = PlansService()
        self.customer_service = CustomerService()
        self.notifier = get_notification_sender()
        self.lock_provider = get_lock_provider()

    @trace_span
    async def handle(self, event: Optional[RazorpayEvent]) -> BillingResult:
        """Dispatch one decoded event. None means the event type is not handled."""
        if event is None:
            return BillingResult.fail(BillingErrorCode.UNRECOGNIZED_EVENT)

        if isinstance(event, PaymentCapturedEvent):
            return await self._handle_payment_captured(event)
        elif isinstance(event, SubscriptionChargedEvent):
            return await self._handle_subscription_charged(event)
        elif isinstance(event, SubscriptionCancelledEvent):
            return await self._handle_subscription_cancelled(event)
        elif isinstance(event, SubscriptionAuthorizedEvent):
            return await self._handle_subscription_authorized(event)
        elif isinstance(event, PaymentFailedEvent):
            return await self._handle_payment_failed(event)

        return BillingResult.fail(BillingErrorCode.UNRECOGNIZED_EVENT)

    async def _notify_success(
        self, email: str, plan: Plan, amount: int, is_free_trial: bool
    ) -> None:
        await best_effort(
            self.notifier.send_payment_success(
                email, plan.name, amount, is_free_trial=is_free_trial
            ),
            "payment success notification",
            plan_code=plan.code,
        )

    # ------------------------------------------------------------------
    # payment.captured
    # ------------------------------------------------------------------

    async def _handle_payment_captured(
        self, event: PaymentCapturedEvent
    ) -> BillingResult[Subscription]:
        """One-time purchase: activate a non-renewing subscription if none is active."""
        payment = event.payment
        notes = payment.parsed_notes

        customer = await self.customer_service.resolve(
            notes.customer_id, notes.email or payment.email
        )
        if not customer:
            logger.error(
                "Customer not found for captured payment",
                extra={"payment_id": payment.id, "user_id": notes.user_id},
            )
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        plan = await self.plans_service.find_plan_by_code(notes.plan_code)
        if not plan:
            logger.error(
                f"Plan not found for captured payment: {notes.plan_code}",
                extra={"payment_id": payment.id, "customer_id": customer.id},
            )
            return BillingResult.fail(BillingErrorCode.PLAN_NOT_FOUND)

        await self.customer_service.set_account_tier(customer.id, AccountTier.CUSTOMER)

        is_free_trial = payment.amount == settings.trial_micro_charge
        if is_free_trial:
            await self.trial_service.mark_email_as_used(customer.email)

        async with customer_lock(self.lock_provider, customer.id) as locked:
            if not locked:
                return BillingResult.fail(BillingErrorCode.LOCK_UNAVAILABLE)

            subscription = await self.subscription_service.get_active_subscription(
                customer.id
            )
            created = subscription is None
            if created:
                subscription = await self.subscription_service.create_subscription(
                    customer_id=customer.id,
                    plan_id=plan.id,
                    provider=PaymentProvider.RAZORPAY,
                    provider_payment_id=payment.id,
                    cycle=parse_cycle(notes.billing_cycle) or BillingCycle.MONTHLY,
                    auto_renew=False,
                )

        await self._notify_success(customer.email, plan, payment.amount, is_free_trial)

        if not created:
            logger.info(
                "Active subscription exists; skipping one-time activation",
                extra={"customer_id": customer.id, "subscription_id": subscription.id},
            )
            return BillingResult.ok(subscription, already_processed=True)

        logger.info(
            f"Processed captured payment for customer {customer.id}",
            extra={
                "customer_id": customer.id,
                "payment_id": payment.id,
                "subscription_id": subscription.id,
                "is_free_trial": is_free_trial,
            },
        )
        return BillingResult.ok(subscription)

    # ------------------------------------------------------------------
    # subscription.activated / subscription.charged
    # ------------------------------------------------------------------

    async def _handle_subscription_charged(
        self, event: SubscriptionChargedEvent
    ) -> BillingResult[Subscription]:
        entity = event.subscription
        payment = event.payment
        notes = entity.parsed_notes

        amount = 0
        if payment:
            amount = payment.amount
        elif entity.item and entity.item.amount:
            amount = (entity.quantity or 1) * entity.item.amount

        customer = await self.customer_service.resolve(
            notes.customer_id,
            entity.contact_email or (payment.email if payment else None),
        )
        if not customer:
            logger.error(
                "Customer not found for subscription charge",
                extra={"provider_subscription_id": entity.id},
            )
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        cycle = parse_cycle(notes.billing_cycle) or BillingCycle.MONTHLY
        plan = await self.plans_service.find_plan_by_code(notes.plan_code)
        if not plan:
            inferred = infer_plan_code(amount, cycle) if amount else None
            plan = await self.plans_service.find_plan_by_code(inferred)
            if plan:
                logger.warning(
                    f"Plan inferred from charged amount: {plan.code}",
                    extra={"provider_subscription_id": entity.id, "amount": amount},
                )
        if not plan:
            logger.error(
                "Plan not found for subscription charge",
                extra={
                    "provider_subscription_id": entity.id,
                    "plan_code": notes.plan_code,
                    "amount": amount,
                },
            )
            return BillingResult.fail(BillingErrorCode.PLAN_NOT_FOUND)

        is_free_trial = False
        if is_trial_plan(plan.code):
            trial_end = entity.trial_end_at
            is_free_trial = (trial_end is not None and trial_end > utcnow()) or (
                amount <= settings.trial_micro_charge
            )

        expected = cycle_price(plan.code, cycle, base_price=plan.price)
        if not is_free_trial and payment and expected and payment.amount < expected:
            logger.warning(
                "Subscription charge below expected amount; not activating",
                extra={
                    "provider_subscription_id": entity.id,
                    "amount": payment.amount,
                    "expected": expected,
                    "plan_code": plan.code,
                    "billing_cycle": cycle.value,
                },
            )
            return BillingResult.fail(
                BillingErrorCode.UNDERPAID_SUBSCRIPTION,
                f"Charged {payment.amount} paise, expected {expected}",
            )

        charge_key = activation_key(entity.id, payment.id if payment else event.created_at)

        async with customer_lock(self.lock_provider, customer.id) as locked:
            if not locked:
                return BillingResult.fail(BillingErrorCode.LOCK_UNAVAILABLE)

            if await self.ledger_repo.idempotency_key_exists(charge_key):
                linked = await self.subscription_repo.get_by_provider_subscription_id(
                    entity.id
                )
                if linked:
                    return await self._replayed_charge(event, linked, charge_key)

            subscription = await self._upsert_subscription(event, customer.id, plan, cycle)

            await self.customer_service.set_account_tier(
                customer.id, AccountTier.CUSTOMER
            )
            if is_free_trial:
                await self.trial_service.mark_email_as_used(customer.email)

            await self.subscription_service.cancel_other_active(
                customer.id, subscription.id
            )

            sync = await self.ledger_service.sync_subscription(
                customer.id,
                subscription_id=subscription.id,
                idempotency_key=charge_key,
                reason=(
                    ACTIVATION_REASON
                    if event.event == RazorpayWebhookType.SUBSCRIPTION_ACTIVATED.value
                    else RENEWAL_REASON
                ),
            )

        if not sync.success:
            return BillingResult.fail(sync.error, sync.message)

        if not sync.already_processed:
            await self._notify_success(customer.email, plan, amount, is_free_trial)

        logger.info(
            f"Processed {event.event} for customer {customer.id}",
            extra={
                "customer_id": customer.id,
                "subscription_id": subscription.id,
                "provider_subscription_id": entity.id,
                "plan_code": plan.code,
                "is_free_trial": is_free_trial,
                "already_processed": sync.already_processed,
            },
        )
        return BillingResult.ok(subscription, already_processed=sync.already_processed)

    async def _replayed_charge(
        self,
        event: SubscriptionChargedEvent,
        linked: Subscription,
        charge_key: str,
    ) -> BillingResult[Subscription]:
        """
        Redelivery of a charge the ledger already applied.

        Status is left alone, so a replayed activation neither revives a
        canceled row nor cancels whatever the customer moved to since. Only
        a missing payment link is filled in.
        """
        if event.payment and not linked.provider_payment_id:
            linked = await self.subscription_repo.update(
                linked.id,
                SubscriptionUpdateModel(provider_payment_id=event.payment.id),
            )
        logger.info(
            "Charge already applied; replay acknowledged",
            extra={
                "subscription_id": linked.id,
                "provider_subscription_id": event.subscription.id,
                "idempotency_key": charge_key,
                "status": linked.status.value,
            },
        )
        return BillingResult.ok(linked, already_processed=True)

    async def _upsert_subscription(
        self,
        event: SubscriptionChargedEvent,
        customer_id: int,
        plan: Plan,
        cycle: BillingCycle,
    ) -> Subscription:
        """Create the row for this gateway subscription, or refresh the linked one."""
        entity = event.subscription
        payment_id = event.payment.id if event.payment else None
        started_at = entity.current_start_at

        existing = await self.subscription_repo.get_by_provider_subscription_id(
            entity.id
        )
        if not existing:
            subscription = await self.subscription_service.create_subscription(
                customer_id=customer_id,
                plan_id=plan.id,
                provider=PaymentProvider.RAZORPAY,
                provider_subscription_id=entity.id,
                provider_payment_id=payment_id,
                started_at=started_at,
                cycle=cycle,
                auto_renew=True,
            )
            if subscription.status == SubscriptionStatus.ACTIVE:
                return subscription
            # lost the insert race to a row that was canceled since
            existing = subscription

        update = SubscriptionUpdateModel(
            status=SubscriptionStatus.ACTIVE,
            plan_id=plan.id,
            auto_renew=True,
            provider_subscription_id=entity.id,
        )
        if payment_id:
            update.provider_payment_id = payment_id
        if started_at:
            update.started_at = started_at
            update.expires_at = entity.current_end_at or add_billing_cycle(
                started_at, cycle
            )
        return await self.subscription_repo.update(existing.id, update)

    # ------------------------------------------------------------------
    # subscription.cancelled
    # ------------------------------------------------------------------

    async def _handle_subscription_cancelled(
        self, event: SubscriptionCancelledEvent
    ) -> BillingResult[Subscription]:
        entity = event.subscription
        subscription = await self.subscription_repo.get_by_provider_subscription_id(
            entity.id
        )
        if not subscription:
            logger.info(
                "Cancelled subscription is not tracked locally",
                extra={"provider_subscription_id": entity.id},
            )
            return BillingResult.ok(message="Subscription not tracked; no action taken")

        # the gateway already cancelled it
        result = await self.subscription_service.cancel(
            subscription.id, cancel_on_provider=False
        )
        if not result.success or result.already_processed:
            return result

        customer = await self.customer_service.get_customer(subscription.customer_id)
        plan = await self.plans_service.get_plan(subscription.plan_id)
        if customer and plan:
            await best_effort(
                self.notifier.send_subscription_cancellation(customer.email, plan.name),
                "cancellation notification",
                subscription_id=subscription.id,
            )
        return result

    # ------------------------------------------------------------------
    # subscription.authorized / subscription.updated
    # ------------------------------------------------------------------

    async def _handle_subscription_authorized(
        self, event: SubscriptionAuthorizedEvent
    ) -> BillingResult:
        """Mandate authorized. Never activates; access waits for the first charge."""
        entity = event.subscription
        if (
            event.event == RazorpayWebhookType.SUBSCRIPTION_UPDATED.value
            and (entity.status or "").lower() != "authorized"
        ):
            return BillingResult.ok(message="Subscription update ignored")

        email = entity.contact_email or (event.payment.email if event.payment else None)
        if not email:
            linked = await self.subscription_repo.get_by_provider_subscription_id(
                entity.id
            )
            if linked:
                customer = await self.customer_service.get_customer(linked.customer_id)
                email = customer.email if customer else None

        if not email:
            logger.warning(
                "No email found for authorized subscription",
                extra={"provider_subscription_id": entity.id},
            )
            return BillingResult.ok(message="Authorization acknowledged")

        plan_code = entity.parsed_notes.plan_code
        if plan_code is None or is_trial_plan(plan_code):
            await self.trial_service.mark_email_as_used(email)

        return BillingResult.ok(message="Authorization acknowledged")

    # ------------------------------------------------------------------
    # payment.failed
    # ------------------------------------------------------------------

    async def _handle_payment_failed(self, event: PaymentFailedEvent) -> BillingResult:
        payment = event.payment
        customer = await self.customer_service.get_by_email(
            payment.email or payment.parsed_notes.email
        )
        if not customer:
            logger.warning(
                "Customer not found for failed payment",
                extra={"payment_id": payment.id},
            )
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        logger.info(
            "Payment failed",
            extra={
                "customer_id": customer.id,
                "payment_id": payment.id,
                "error_code": payment.error_code,
            },
        )
        await best_effort(
            self.notifier.send_payment_failure(
                customer.email,
                payment.amount,
                error_code=payment.error_code,
                error_description=payment.error_description,
            ),
            "payment failure notification",
            customer_id=customer.id,
        )
        return BillingResult.ok(message="Payment failure recorded")


async def handle_razorpay_webhook(request: Request) -> dict[str, Any]:
    """
    Handle incoming webhook from Razorpay.

    Verifies the signature over the raw body, decodes the event and hands it
    to the reconciler.
    """
    body = await request.body()
    signature = request.headers.get("x-razorpay-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing x-razorpay-signature header",
        )

    if not get_payment_provider().verify_webhook_signature(body, signature):
        logger.error("Razorpay webhook signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )

    try:
        event = decode_event(json.loads(body))
    except (ValueError, InvalidWebhookPayloadError) as e:
        logger.error(f"Invalid Razorpay webhook payload: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        )

    if event is None:
        logger.info("Unhandled Razorpay webhook event")
    else:
        logger.info(
            f"Received Razorpay webhook: {event.event}",
            extra={"event_type": event.event, "account_id": event.account_id},
        )

    result = await WebhookReconciler().handle(event)

    if result.error == BillingErrorCode.LOCK_UNAVAILABLE:
        # non-2xx makes the gateway redeliver
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Customer is being updated, retry later",
        )

    if not result.success:
        logger.warning(
            f"Razorpay webhook not applied: {result.error.value}",
            extra={"error": result.error.value, "message": result.message},
        )

    return result.model_dump(mode="json", exclude={"data"})
