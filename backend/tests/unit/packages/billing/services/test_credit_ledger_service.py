import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from packages.billing.models.domain.enums import (
    BalanceKey,
    BillingErrorCode,
    CreditType,
    DeductFrom,
    LedgerDirection,
    LedgerSource,
)
from packages.billing.repositories.balance_repository import BalanceRepository
from packages.billing.services.credit_ledger_service import (
    ACTIVATION_REASON,
    RENEWAL_REASON,
    SUBSCRIPTION_EXHAUSTED_MESSAGE,
    TRIAL_EXHAUSTED_MESSAGE,
    CreditLedgerService,
    activation_key,
)
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.trial_service import TrialService


async def _set_balances(customer_id: int, prepaid=0, free=0) -> None:
    await BalanceRepository().set_values(
        customer_id,
        {
            BalanceKey.CREDITS_PREPAID: Decimal(prepaid),
            BalanceKey.CREDITS_FREE: Decimal(free),
        },
    )


@pytest_asyncio.fixture
async def trial_subscription(sample_customer, sample_plans, make_subscription):
    """PRO subscription two days into its trial, trial already consumed."""
    started_at = datetime.now(timezone.utc) - timedelta(days=2)
    subscription = await make_subscription(
        customer_id=sample_customer.id,
        plan_id=sample_plans["PRO"].id,
        started_at=started_at,
        expires_at=started_at + timedelta(days=30),
    )
    await TrialService().mark_email_as_used(sample_customer.email)
    return subscription


class TestCreditLedgerService:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_new_customer_has_zero_balances(self, service, sample_customer):
        balances = await service.get_balance(sample_customer.id)

        assert balances.prepaid == Decimal("0.00")
        assert balances.free == Decimal("0.00")

    async def test_balance_by_unknown_email(self, service):
        result = await service.get_balance_by_email("nobody@example.com")

        assert not result.success
        assert result.error == BillingErrorCode.CUSTOMER_NOT_FOUND


class TestAddCredits:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_add_prepaid_writes_balance_and_entry(self, service, sample_customer):
        result = await service.add_credits(
            "Ravi@Example.com ", CreditType.PREPAID, "250.50", "goodwill", "ticket-9"
        )

        assert result.success
        assert result.data.prepaid == Decimal("250.50")
        assert result.data.free == Decimal("0.00")

        entries = await service.get_ledger(email=sample_customer.email)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.type == CreditType.PREPAID
        assert entry.direction == LedgerDirection.CREDIT
        assert entry.amount == Decimal("250.50")
        assert entry.reason == "goodwill"
        assert entry.source == LedgerSource.ADMIN
        assert entry.reference_id == "ticket-9"

    async def test_add_free_leaves_prepaid_alone(self, service, sample_customer):
        await _set_balances(sample_customer.id, prepaid=100)

        result = await service.add_credits(
            sample_customer.email, CreditType.FREE, 40, "promo"
        )

        assert result.data.prepaid == Decimal("100.00")
        assert result.data.free == Decimal("40.00")

    @pytest.mark.parametrize("amount", [0, -5, "0.00"])
    async def test_non_positive_amount_rejected(self, service, sample_customer, amount):
        result = await service.add_credits(
            sample_customer.email, CreditType.PREPAID, amount, "bad"
        )

        assert result.error == BillingErrorCode.INVALID_AMOUNT
        assert await service.get_ledger(email=sample_customer.email) == []

    async def test_unknown_customer(self, service):
        result = await service.add_credits(
            "ghost@example.com", CreditType.FREE, 10, "promo"
        )
        assert result.error == BillingErrorCode.CUSTOMER_NOT_FOUND


class TestDeductCredits:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_prepaid_shortfall_leaves_balances_unchanged(
        self, service, sample_customer
    ):
        await _set_balances(sample_customer.id, prepaid=30, free=10)

        result = await service.deduct_credits(
            sample_customer.email, 50, DeductFrom.PREPAID, "correction"
        )

        assert not result.success
        assert result.error == BillingErrorCode.INSUFFICIENT_PREPAID_CREDITS
        balances = await service.get_balance(sample_customer.id)
        assert balances.prepaid == Decimal("30.00")
        assert balances.free == Decimal("10.00")
        assert await service.get_ledger(email=sample_customer.email) == []

    async def test_free_shortfall(self, service, sample_customer):
        await _set_balances(sample_customer.id, prepaid=500, free=5)

        result = await service.deduct_credits(
            sample_customer.email, 10, DeductFrom.FREE, "correction"
        )

        assert result.error == BillingErrorCode.INSUFFICIENT_FREE_CREDITS

    async def test_deduct_from_free(self, service, sample_customer):
        await _set_balances(sample_customer.id, prepaid=500, free=50)

        result = await service.deduct_credits(
            sample_customer.email, 20, DeductFrom.FREE, "correction"
        )

        assert result.data.free == Decimal("30.00")
        assert result.data.prepaid == Decimal("500.00")
        entry = (await service.get_ledger(email=sample_customer.email))[-1]
        assert entry.type == CreditType.FREE
        assert entry.direction == LedgerDirection.DEBIT

    async def test_auto_takes_prepaid_then_free(self, service, sample_customer):
        await _set_balances(sample_customer.id, prepaid=30, free=50)

        result = await service.deduct_credits(
            sample_customer.email, 60, DeductFrom.AUTO, "chargeback"
        )

        assert result.success
        assert result.data.prepaid == Decimal("0.00")
        assert result.data.free == Decimal("20.00")
        entry = (await service.get_ledger(email=sample_customer.email))[-1]
        assert entry.type == CreditType.PREPAID
        assert entry.amount == Decimal("60")

    async def test_auto_clamps_at_zero(self, service, sample_customer):
        await _set_balances(sample_customer.id, prepaid=10, free=5)

        result = await service.deduct_credits(
            sample_customer.email, 100, DeductFrom.AUTO, "chargeback"
        )

        assert result.success
        assert result.data.prepaid == Decimal("0.00")
        assert result.data.free == Decimal("0.00")


class TestConsumeCredits:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_prepaid_only_consumption(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500, free=0)

        result = await service.consume_credits(
            sample_customer.email, 300, "transcription", "req-1"
        )

        assert result.success
        assert result.data.balances.prepaid == Decimal("200.00")
        assert result.data.balances.free == Decimal("0.00")
        assert result.data.prepaid_used == Decimal("300.00")
        assert result.data.free_trial is False

        snapshot = await BalanceRepository().get_snapshot(sample_customer.id)
        assert snapshot.usage_used == Decimal(300)
        assert snapshot.usage_prepaid_used == Decimal(300)

    async def test_free_credits_spent_first(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500, free=100)

        result = await service.consume_credits(
            sample_customer.email, 150, "transcription", "req-2"
        )

        assert result.data.free_used == Decimal("100.00")
        assert result.data.prepaid_used == Decimal("50.00")
        assert result.data.balances.free == Decimal("0.00")
        assert result.data.balances.prepaid == Decimal("450.00")

        snapshot = await BalanceRepository().get_snapshot(sample_customer.id)
        assert snapshot.usage_used == Decimal(150)
        assert snapshot.usage_prepaid_used == Decimal(50)

    async def test_writes_ledger_entry_and_usage_record(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=0, free=100)

        await service.consume_credits(sample_customer.email, 25, "summary", "req-3")

        entry = (await service.get_ledger(email=sample_customer.email))[-1]
        assert entry.type == CreditType.FREE
        assert entry.direction == LedgerDirection.DEBIT
        assert entry.reason == "usage:summary"
        assert entry.source == LedgerSource.SYSTEM
        assert entry.reference_id == "req-3"

        usage = await service.get_usage_history(email=sample_customer.email)
        assert [(u.resource, u.cost, u.request_id) for u in usage] == [
            ("summary", Decimal(25), "req-3")
        ]

    async def test_trial_window_spends_only_free_credits(
        self, service, sample_customer, trial_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500, free=100)

        result = await service.consume_credits(
            sample_customer.email, 150, "transcription", "req-4"
        )

        assert not result.success
        assert result.error == BillingErrorCode.USAGE_LIMIT_REACHED
        assert result.message == TRIAL_EXHAUSTED_MESSAGE
        balances = await service.get_balance(sample_customer.id)
        assert balances.prepaid == Decimal("500.00")
        assert balances.free == Decimal("100.00")

    async def test_trial_window_consumption_is_flagged(
        self, service, sample_customer, trial_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500, free=100)

        result = await service.consume_credits(
            sample_customer.email, 60, "transcription", "req-5"
        )

        assert result.data.free_trial is True
        assert result.data.prepaid_used == Decimal("0.00")
        assert result.data.balances.free == Decimal("40.00")

    async def test_paid_limit_message(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=10, free=10)

        result = await service.consume_credits(
            sample_customer.email, 25, "transcription", "req-6"
        )

        assert result.error == BillingErrorCode.USAGE_LIMIT_REACHED
        assert result.message == SUBSCRIPTION_EXHAUSTED_MESSAGE

    async def test_repeated_request_id_charges_once(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500)

        first = await service.consume_credits(
            sample_customer.email, 100, "transcription", "req-dup"
        )
        second = await service.consume_credits(
            sample_customer.email, 100, "transcription", "req-dup"
        )

        assert first.success and not first.already_processed
        assert second.success and second.already_processed
        assert second.data.balances.prepaid == Decimal("400.00")
        assert len(await service.get_usage_history(email=sample_customer.email)) == 1

    async def test_retry_after_cancellation_is_acknowledged(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500)
        await service.consume_credits(
            sample_customer.email, 100, "transcription", "req-late-retry"
        )
        await SubscriptionService().cancel(
            active_subscription.id, cancel_on_provider=False
        )

        retry = await service.consume_credits(
            sample_customer.email, 100, "transcription", "req-late-retry"
        )

        assert retry.success and retry.already_processed
        assert retry.data.balances.prepaid == Decimal("400.00")
        assert retry.data.prepaid_used == Decimal(0)

        fresh = await service.consume_credits(
            sample_customer.email, 100, "transcription", "req-after-cancel"
        )
        assert fresh.error == BillingErrorCode.SUBSCRIPTION_INACTIVE

    async def test_requires_active_subscription(self, service, sample_customer):
        await _set_balances(sample_customer.id, prepaid=500)

        result = await service.consume_credits(
            sample_customer.email, 10, "transcription", "req-7"
        )

        assert result.error == BillingErrorCode.SUBSCRIPTION_INACTIVE

    async def test_zero_cost_rejected(
        self, service, sample_customer, active_subscription
    ):
        result = await service.consume_credits(
            sample_customer.email, 0, "transcription", "req-8"
        )
        assert result.error == BillingErrorCode.INVALID_AMOUNT


class TestSyncSubscription:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_resets_to_cycle_price(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=12, free=34)
        await service.consume_credits(sample_customer.email, 10, "x", "req-s1")

        result = await service.sync_subscription(sample_customer.id)

        assert result.success
        assert result.data.prepaid == Decimal("129900.00")
        assert result.data.free == Decimal("0.00")
        snapshot = await BalanceRepository().get_snapshot(sample_customer.id)
        assert snapshot.usage_used == 0
        assert snapshot.usage_prepaid_used == 0

        entry = (await service.get_ledger(email=sample_customer.email))[-1]
        assert entry.reason == ACTIVATION_REASON
        assert entry.source == LedgerSource.SUBSCRIPTION
        assert entry.reference_id == str(active_subscription.id)

    async def test_same_idempotency_key_applies_once(
        self, service, sample_customer, active_subscription
    ):
        key = activation_key("sub_existing_001", "pay_1")

        first = await service.sync_subscription(
            sample_customer.id, active_subscription.id, idempotency_key=key
        )
        await _set_balances(sample_customer.id, prepaid=5)
        second = await service.sync_subscription(
            sample_customer.id, active_subscription.id, idempotency_key=key
        )

        assert not first.already_processed
        assert second.success and second.already_processed
        assert second.data.prepaid == Decimal("5.00")
        entries = await service.get_ledger(email=sample_customer.email)
        assert [e.idempotency_key for e in entries] == [key]

    async def test_reset_is_recorded_as_renewal(
        self, service, sample_customer, active_subscription
    ):
        await service.reset_subscription(sample_customer.id)

        entry = (await service.get_ledger(email=sample_customer.email))[-1]
        assert entry.reason == RENEWAL_REASON

    async def test_without_subscription(self, service, sample_customer):
        result = await service.sync_subscription(sample_customer.id)
        assert result.error == BillingErrorCode.SUBSCRIPTION_NOT_FOUND

    def test_activation_key_format(self):
        assert activation_key("sub_1", "pay_2") == "activation:sub_1:pay_2"


class TestOverview:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_overview_with_subscription(
        self, service, sample_customer, active_subscription
    ):
        await _set_balances(sample_customer.id, prepaid=500, free=100)
        await service.consume_credits(sample_customer.email, 150, "x", "req-o1")

        result = await service.get_overview(sample_customer.id)

        overview = result.data
        assert overview.email == sample_customer.email
        assert overview.balances.prepaid == Decimal("450.00")
        assert overview.usage_cap.total == Decimal("450.00")
        assert overview.usage_cap.used == Decimal("150.00")
        assert overview.usage_cap.prepaid_used == Decimal("50.00")
        assert overview.usage_cap.remaining == Decimal("300.00")
        assert overview.subscription.plan_code == "PRO_PRIME-X"
        assert overview.subscription.billing_cycle == "MONTHLY"
        assert overview.next_invoice_amount == 129900

    async def test_no_next_invoice_without_auto_renew(
        self, service, sample_customer, sample_plans, make_subscription
    ):
        now = datetime.now(timezone.utc)
        await make_subscription(
            customer_id=sample_customer.id,
            plan_id=sample_plans["PRO"].id,
            started_at=now,
            expires_at=now + timedelta(days=30),
            auto_renew=False,
        )

        result = await service.get_overview(sample_customer.id)

        assert result.data.subscription.auto_renew is False
        assert result.data.next_invoice_amount is None

    async def test_overview_without_subscription(self, service, sample_customer):
        result = await service.get_overview(sample_customer.id)

        assert result.success
        assert result.data.subscription is None
        assert result.data.usage_cap.remaining == Decimal("0.00")


class TestGrantTrialCredits:
    @pytest.fixture
    def service(self):
        return CreditLedgerService()

    async def test_granted_once_per_email(self, service, sample_customer):
        first = await service.grant_trial_credits(sample_customer.email, 100)
        second = await service.grant_trial_credits(sample_customer.email, 100)

        assert first.success
        assert first.data.free == Decimal("100.00")
        assert second.error == BillingErrorCode.ALREADY_CLAIMED
        assert (await service.get_balance(sample_customer.id)).free == Decimal("100.00")
        assert await TrialService().check_eligibility(sample_customer.email) is False
