"""
Credit ledger: balances, metered consumption and the audit trail.

Every balance mutation runs in one transaction holding the customer row
lock, so concurrent requests for the same customer apply one at a time and
the balance projection, ledger entry and usage record commit together.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, List, Optional, Union

from sqlalchemy.exc import IntegrityError

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from common.db.scoped import transaction
from packages.billing.models.domain.enums import (
    BalanceKey,
    BillingErrorCode,
    CreditType,
    DeductFrom,
    LedgerDirection,
    LedgerSource,
)
from packages.billing.models.domain.ledger import (
    BillingOverview,
    ConsumeOutcome,
    CreditBalances,
    LedgerEntry,
    LedgerEntryCreateModel,
    SubscriptionSummary,
    UsageCap,
    UsageRecord,
    UsageRecordCreateModel,
    money,
)
from packages.billing.models.domain.results import BillingResult
from packages.billing.repositories.balance_repository import BalanceRepository
from packages.billing.repositories.ledger_repository import (
    LedgerEntryRepository,
    UsageRecordRepository,
)
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.pricing import cycle_price, derive_cycle_from_dates
from packages.billing.services.trial_service import TrialService
from packages.customers.models.domain.customer import Customer
from packages.customers.repositories.customer_repository import CustomerRepository

logger = get_logger(__name__)

Amount = Union[Decimal, int, float, str]

TRIAL_EXHAUSTED_MESSAGE = (
    "Free trial credits exhausted. Upgrade to a paid plan to continue."
)
SUBSCRIPTION_EXHAUSTED_MESSAGE = (
    "Usage limit reached for your current subscription. "
    "Add credits or upgrade your plan."
)

ACTIVATION_REASON = "Subscription activation"
RENEWAL_REASON = "Subscription renewal"


def activation_key(provider_subscription_id: str, charge_ref: Any) -> str:
    """Idempotency key of the ledger reset for one gateway charge."""
    return f"activation:{provider_subscription_id}:{charge_ref}"


def _to_decimal(value: Amount) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _balances(prepaid: Decimal, free: Decimal) -> CreditBalances:
    return CreditBalances(prepaid=prepaid, free=free)


class CreditLedgerService:
    """Per-customer prepaid/free balances with an append-only ledger."""

    def __init__(self):
        self.customer_repo = CustomerRepository()
        self.balance_repo = BalanceRepository()
        self.ledger_repo = LedgerEntryRepository()
        self.usage_repo = UsageRecordRepository()
        self.subscription_repo = SubscriptionRepository()
        self.plan_repo = PlanRepository()
        self.trial_service = TrialService()

    @asynccontextmanager
    async def _customer_lock(self, customer_id: int) -> AsyncIterator[None]:
        async with transaction():
            await self.customer_repo.lock_for_update(customer_id)
            yield

    async def _append_entry(
        self,
        customer: Customer,
        credit_type: CreditType,
        direction: LedgerDirection,
        amount: Decimal,
        reason: str,
        source: LedgerSource,
        reference_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> LedgerEntry:
        return await self.ledger_repo.create(
            LedgerEntryCreateModel(
                customer_id=customer.id,
                email=customer.email,
                type=credit_type,
                direction=direction,
                amount=amount,
                reason=reason,
                source=source,
                reference_id=reference_id,
                idempotency_key=idempotency_key,
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @trace_span
    async def get_balance(self, customer_id: int) -> CreditBalances:
        snapshot = await self.balance_repo.get_snapshot(customer_id)
        return _balances(snapshot.prepaid, snapshot.free)

    @trace_span
    async def get_balance_by_email(self, email: str) -> BillingResult[CreditBalances]:
        customer = await self.customer_repo.get_by_email(email)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)
        return BillingResult.ok(await self.get_balance(customer.id))

    @trace_span
    async def get_ledger(
        self, email: Optional[str] = None, limit: Optional[int] = None
    ) -> List[LedgerEntry]:
        return await self.ledger_repo.list_entries(
            email=email.strip().lower() if email else None, limit=limit
        )

    @trace_span
    async def get_usage_history(
        self, email: Optional[str] = None, limit: Optional[int] = None
    ) -> List[UsageRecord]:
        return await self.usage_repo.list_records(
            email=email.strip().lower() if email else None, limit=limit
        )

    @readonly
    @trace_span
    async def get_overview(self, customer_id: int) -> BillingResult[BillingOverview]:
        """Balances, usage cap and the active subscription in one view."""
        customer = await self.customer_repo.get(customer_id)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        snapshot = await self.balance_repo.get_snapshot(customer_id)
        total = snapshot.prepaid + snapshot.free
        usage_cap = UsageCap(
            total=money(total),
            used=money(snapshot.usage_used),
            prepaid_used=money(snapshot.usage_prepaid_used),
            remaining=money(max(Decimal(0), total - snapshot.usage_used)),
        )

        summary = None
        next_invoice = None
        currency = "INR"
        subscription = await self.subscription_repo.get_active_for_customer(
            customer_id
        )
        if subscription:
            plan = await self.plan_repo.get(subscription.plan_id)
            if plan:
                cycle = derive_cycle_from_dates(
                    subscription.started_at, subscription.expires_at
                )
                currency = plan.currency
                next_invoice = (
                    cycle_price(plan.code, cycle, base_price=plan.price)
                    if subscription.auto_renew
                    else None
                )
                summary = SubscriptionSummary(
                    subscription_id=subscription.id,
                    plan_code=plan.code,
                    plan_name=plan.name,
                    status=subscription.status.value,
                    billing_cycle=cycle.value,
                    started_at=subscription.started_at,
                    expires_at=subscription.expires_at,
                    days_remaining=subscription.days_remaining(),
                    auto_renew=subscription.auto_renew,
                    is_free_trial=await self.trial_service.is_in_trial_window(
                        subscription, plan, customer.email
                    ),
                )

        return BillingResult.ok(
            BillingOverview(
                customer_id=customer.id,
                email=customer.email,
                account_tier=customer.account_tier.value,
                subscription=summary,
                balances=_balances(snapshot.prepaid, snapshot.free),
                usage_cap=usage_cap,
                next_invoice_amount=next_invoice,
                currency=currency,
            )
        )

    # ------------------------------------------------------------------
    # Admin adjustments
    # ------------------------------------------------------------------

    @trace_span
    async def add_credits(
        self,
        email: str,
        credit_type: CreditType,
        amount: Amount,
        reason: str,
        reference_id: Optional[str] = None,
        source: LedgerSource = LedgerSource.ADMIN,
    ) -> BillingResult[CreditBalances]:
        customer = await self.customer_repo.get_by_email(email)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        amount = _to_decimal(amount)
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.INVALID_AMOUNT, "Amount must be greater than zero"
            )

        key = (
            BalanceKey.CREDITS_FREE
            if credit_type == CreditType.FREE
            else BalanceKey.CREDITS_PREPAID
        )
        async with self._customer_lock(customer.id):
            snapshot = await self.balance_repo.get_snapshot(customer.id)
            prepaid, free = snapshot.prepaid, snapshot.free
            if key == BalanceKey.CREDITS_FREE:
                free += amount
            else:
                prepaid += amount
            await self.balance_repo.set_values(
                customer.id,
                {key: free if key == BalanceKey.CREDITS_FREE else prepaid},
            )
            await self._append_entry(
                customer,
                credit_type,
                LedgerDirection.CREDIT,
                amount,
                reason,
                source,
                reference_id,
            )

        logger.info(
            f"Added {amount} {credit_type.value} credits",
            extra={
                "customer_id": customer.id,
                "credit_type": credit_type.value,
                "amount": str(amount),
                "source": source.value,
            },
        )
        return BillingResult.ok(_balances(prepaid, free))

    @trace_span
    async def deduct_credits(
        self,
        email: str,
        amount: Amount,
        deduct_from: DeductFrom,
        reason: str,
        reference_id: Optional[str] = None,
    ) -> BillingResult[CreditBalances]:
        """
        Remove credits from one pool, or from prepaid then free for AUTO.

        PREPAID and FREE fail when that pool cannot cover the amount; AUTO
        always succeeds and clamps both pools at zero.
        """
        customer = await self.customer_repo.get_by_email(email)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        amount = _to_decimal(amount)
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.INVALID_AMOUNT, "Amount must be greater than zero"
            )

        async with self._customer_lock(customer.id):
            snapshot = await self.balance_repo.get_snapshot(customer.id)
            prepaid, free = snapshot.prepaid, snapshot.free

            if deduct_from == DeductFrom.PREPAID:
                if prepaid <= 0 or prepaid < amount:
                    return BillingResult.fail(
                        BillingErrorCode.INSUFFICIENT_PREPAID_CREDITS,
                        f"Prepaid balance {money(prepaid)} is below {money(amount)}",
                    )
                prepaid -= amount
            elif deduct_from == DeductFrom.FREE:
                if free <= 0 or free < amount:
                    return BillingResult.fail(
                        BillingErrorCode.INSUFFICIENT_FREE_CREDITS,
                        f"Free balance {money(free)} is below {money(amount)}",
                    )
                free -= amount
            else:
                from_prepaid = min(prepaid, amount)
                prepaid -= from_prepaid
                free = max(Decimal(0), free - (amount - from_prepaid))

            await self.balance_repo.set_values(
                customer.id,
                {BalanceKey.CREDITS_PREPAID: prepaid, BalanceKey.CREDITS_FREE: free},
            )
            await self._append_entry(
                customer,
                CreditType.FREE if deduct_from == DeductFrom.FREE else CreditType.PREPAID,
                LedgerDirection.DEBIT,
                amount,
                reason,
                LedgerSource.ADMIN,
                reference_id,
            )

        logger.info(
            f"Deducted {amount} credits ({deduct_from.value})",
            extra={"customer_id": customer.id, "deduct_from": deduct_from.value},
        )
        return BillingResult.ok(_balances(prepaid, free))

    # ------------------------------------------------------------------
    # Metered consumption
    # ------------------------------------------------------------------

    @trace_span
    async def consume_credits(
        self,
        email: str,
        cost: Amount,
        resource: str,
        request_id: str,
    ) -> BillingResult[ConsumeOutcome]:
        """
        Charge one metered request.

        Free credits are always spent before prepaid ones. While the customer
        is inside a free trial only free credits may be spent. A request_id
        already recorded for the customer is acknowledged without charging
        again.
        """
        customer = await self.customer_repo.get_by_email(email)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        cost = _to_decimal(cost)
        if cost <= 0:
            return BillingResult.fail(
                BillingErrorCode.INVALID_AMOUNT, "Cost must be greater than zero"
            )

        # a retry stays acknowledged even after the subscription has ended
        if await self.usage_repo.get_by_request_id(customer.id, request_id):
            return await self._duplicate_consumption(customer.id, request_id)

        subscription = await self.subscription_repo.get_active_for_customer(
            customer.id
        )
        if not subscription:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_INACTIVE,
                "An active subscription is required to consume credits",
            )
        plan = await self.plan_repo.get(subscription.plan_id)

        async with self._customer_lock(customer.id):
            if await self.usage_repo.get_by_request_id(customer.id, request_id):
                return await self._duplicate_consumption(customer.id, request_id)

            snapshot = await self.balance_repo.get_snapshot(customer.id)
            prepaid, free = snapshot.prepaid, snapshot.free

            in_trial = await self.trial_service.is_in_trial_window(
                subscription, plan, customer.email
            )
            if in_trial:
                if free < cost:
                    return BillingResult.fail(
                        BillingErrorCode.USAGE_LIMIT_REACHED, TRIAL_EXHAUSTED_MESSAGE
                    )
                free_used, prepaid_used = cost, Decimal(0)
            else:
                if prepaid + free < cost:
                    return BillingResult.fail(
                        BillingErrorCode.USAGE_LIMIT_REACHED,
                        SUBSCRIPTION_EXHAUSTED_MESSAGE,
                    )
                free_used = min(free, cost)
                prepaid_used = cost - free_used

            free -= free_used
            prepaid -= prepaid_used
            await self.balance_repo.set_values(
                customer.id,
                {
                    BalanceKey.CREDITS_PREPAID: prepaid,
                    BalanceKey.CREDITS_FREE: free,
                    BalanceKey.USAGE_USED: snapshot.usage_used + cost,
                    BalanceKey.USAGE_PREPAID_USED: snapshot.usage_prepaid_used
                    + prepaid_used,
                },
            )
            await self._append_entry(
                customer,
                CreditType.PREPAID if prepaid_used > 0 else CreditType.FREE,
                LedgerDirection.DEBIT,
                cost,
                f"usage:{resource}",
                LedgerSource.SYSTEM,
                request_id,
            )
            await self.usage_repo.create(
                UsageRecordCreateModel(
                    customer_id=customer.id,
                    email=customer.email,
                    resource=resource,
                    cost=cost,
                    request_id=request_id,
                )
            )

        logger.info(
            f"Consumed {cost} credits for {resource}",
            extra={
                "customer_id": customer.id,
                "request_id": request_id,
                "free_used": str(free_used),
                "prepaid_used": str(prepaid_used),
                "free_trial": in_trial,
            },
        )
        return BillingResult.ok(
            ConsumeOutcome(
                balances=_balances(prepaid, free),
                free_used=money(free_used),
                prepaid_used=money(prepaid_used),
                free_trial=in_trial,
            )
        )

    async def _duplicate_consumption(
        self, customer_id: int, request_id: str
    ) -> BillingResult[ConsumeOutcome]:
        logger.info(
            "Duplicate consumption request acknowledged",
            extra={"customer_id": customer_id, "request_id": request_id},
        )
        return BillingResult.ok(
            ConsumeOutcome(
                balances=await self.get_balance(customer_id),
                free_used=Decimal(0),
                prepaid_used=Decimal(0),
            ),
            already_processed=True,
        )

    # ------------------------------------------------------------------
    # Subscription-driven resets
    # ------------------------------------------------------------------

    @trace_span
    async def sync_subscription(
        self,
        customer_id: int,
        subscription_id: Optional[int] = None,
        idempotency_key: Optional[str] = None,
        reason: str = ACTIVATION_REASON,
    ) -> BillingResult[CreditBalances]:
        """
        Reset balances to the subscription's cycle price.

        prepaid becomes the plan's per-cycle price, free and both usage
        counters become zero. With an idempotency key that was already
        recorded nothing changes and the result is flagged already_processed.
        """
        customer = await self.customer_repo.get(customer_id)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        if subscription_id is not None:
            subscription = await self.subscription_repo.get(subscription_id)
        else:
            subscription = await self.subscription_repo.get_active_for_customer(
                customer_id
            )
        if not subscription:
            return BillingResult.fail(BillingErrorCode.SUBSCRIPTION_NOT_FOUND)

        plan = await self.plan_repo.get(subscription.plan_id)
        if not plan:
            return BillingResult.fail(BillingErrorCode.PLAN_NOT_FOUND)

        cycle = derive_cycle_from_dates(subscription.started_at, subscription.expires_at)
        credit = Decimal(cycle_price(plan.code, cycle, base_price=plan.price))

        try:
            async with self._customer_lock(customer.id):
                if idempotency_key and await self.ledger_repo.idempotency_key_exists(
                    idempotency_key
                ):
                    return await self._already_synced(customer.id, idempotency_key)

                await self.balance_repo.set_values(
                    customer.id,
                    {
                        BalanceKey.CREDITS_PREPAID: credit,
                        BalanceKey.CREDITS_FREE: Decimal(0),
                        BalanceKey.USAGE_USED: Decimal(0),
                        BalanceKey.USAGE_PREPAID_USED: Decimal(0),
                    },
                )
                await self._append_entry(
                    customer,
                    CreditType.PREPAID,
                    LedgerDirection.CREDIT,
                    credit,
                    reason,
                    LedgerSource.SUBSCRIPTION,
                    str(subscription.id),
                    idempotency_key,
                )
        except IntegrityError:
            # A concurrent delivery recorded the same key first
            return await self._already_synced(customer.id, idempotency_key)

        logger.info(
            f"{reason}: prepaid reset to {credit}",
            extra={
                "customer_id": customer.id,
                "subscription_id": subscription.id,
                "plan_code": plan.code,
                "billing_cycle": cycle.value,
            },
        )
        return BillingResult.ok(_balances(credit, Decimal(0)))

    async def _already_synced(
        self, customer_id: int, idempotency_key: Optional[str]
    ) -> BillingResult[CreditBalances]:
        logger.info(
            "Subscription sync already applied",
            extra={"customer_id": customer_id, "idempotency_key": idempotency_key},
        )
        return BillingResult.ok(
            await self.get_balance(customer_id), already_processed=True
        )

    @trace_span
    async def reset_subscription(
        self,
        customer_id: int,
        subscription_id: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> BillingResult[CreditBalances]:
        """Same reset as sync_subscription, recorded as a renewal."""
        return await self.sync_subscription(
            customer_id,
            subscription_id=subscription_id,
            idempotency_key=idempotency_key,
            reason=RENEWAL_REASON,
        )

    # ------------------------------------------------------------------
    # Trial credits
    # ------------------------------------------------------------------

    @trace_span
    async def grant_trial_credits(
        self,
        email: str,
        amount: Amount,
        reason: str = "Free trial credits",
        reference_id: Optional[str] = None,
    ) -> BillingResult[CreditBalances]:
        """Grant free credits once per email, consuming its trial."""
        customer = await self.customer_repo.get_by_email(email)
        if not customer:
            return BillingResult.fail(BillingErrorCode.CUSTOMER_NOT_FOUND)

        if not await self.trial_service.check_eligibility(customer.email):
            return BillingResult.fail(
                BillingErrorCode.ALREADY_CLAIMED,
                "Free trial credits were already claimed for this email",
            )

        result = await self.add_credits(
            customer.email,
            CreditType.FREE,
            amount,
            reason,
            reference_id,
            source=LedgerSource.SYSTEM,
        )
        if result.success:
            await self.trial_service.mark_email_as_used(customer.email)
        return result
