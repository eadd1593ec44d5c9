import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from common.core.exceptions import UpstreamError
from packages.billing.models.domain.enums import (
    BillingCycle,
    BillingErrorCode,
    CreditType,
    LedgerSource,
)
from packages.billing.services.credit_ledger_service import CreditLedgerService
from packages.billing.services.proration_service import (
    UPGRADE_ROLLOVER_REASON,
    ProrationService,
)


class TestComputePrepaidCredit:
    @pytest.fixture
    def service(self):
        return ProrationService()

    async def test_fifteen_days_left_on_monthly_pro(
        self, service, sample_customer, sample_plans, make_subscription
    ):
        started_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
        expires_at = started_at + timedelta(days=30)
        await make_subscription(
            customer_id=sample_customer.id,
            plan_id=sample_plans["PRO"].id,
            started_at=started_at,
            expires_at=expires_at,
        )

        # 15 days and 6 hours left floors to 15
        now = expires_at - timedelta(days=15, hours=6)
        credit = await service.compute_prepaid_credit(sample_customer.id, now=now)

        assert credit.days_left == 15
        assert credit.per_day == 2530
        assert credit.credit_amount == 37950
        assert credit.source_plan_code == "PRO"

    async def test_annual_cycle_uses_365_days(
        self, service, sample_customer, sample_plans, make_subscription
    ):
        started_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        expires_at = datetime(2027, 1, 1, tzinfo=timezone.utc)
        await make_subscription(
            customer_id=sample_customer.id,
            plan_id=sample_plans["PRO_PRIME-X"].id,
            started_at=started_at,
            expires_at=expires_at,
        )

        credit = await service.compute_prepaid_credit(
            sample_customer.id, now=expires_at - timedelta(days=100)
        )

        assert credit.per_day == 1259900 // 365
        assert credit.credit_amount == (1259900 // 365) * 100

    async def test_expired_subscription_gives_nothing(
        self, service, sample_customer, sample_plans, make_subscription
    ):
        now = datetime.now(timezone.utc)
        subscription = await make_subscription(
            customer_id=sample_customer.id,
            plan_id=sample_plans["PRO"].id,
            started_at=now - timedelta(days=31),
            expires_at=now - timedelta(days=1),
        )

        credit = await service.compute_prepaid_credit(sample_customer.id)

        assert credit.credit_amount == 0
        assert credit.source_subscription_id == subscription.id

    async def test_no_subscription(self, service, sample_customer):
        credit = await service.compute_prepaid_credit(sample_customer.id)

        assert credit.credit_amount == 0
        assert credit.source_subscription_id is None


class TestCreateUpgradeSubscription:
    @pytest.fixture
    def service(self):
        return ProrationService()

    async def test_rolls_unused_credit_into_prepaid(
        self, service, sample_customer, active_subscription, mock_payment_provider
    ):
        expected = await service.compute_prepaid_credit(sample_customer.id)

        result = await service.create_upgrade_subscription(
            sample_customer.id,
            sample_customer.email,
            "PRO_PRIME-X",
            BillingCycle.ANNUAL,
        )

        assert result.success
        checkout = result.data
        assert checkout.provider_subscription_id == "sub_test_new"
        assert checkout.amount == 1259900
        assert checkout.credit_amount == expected.credit_amount
        assert checkout.credit_amount > 0
        assert checkout.rolled_over == Decimal(expected.credit_amount)

        entry = (await CreditLedgerService().get_ledger(email=sample_customer.email))[-1]
        assert entry.reason == UPGRADE_ROLLOVER_REASON
        assert entry.type == CreditType.PREPAID
        assert entry.source == LedgerSource.SYSTEM
        assert entry.reference_id == "sub_test_new"

        notes = mock_payment_provider.create_subscription.call_args.kwargs["notes"]
        assert notes["planCode"] == "PRO_PRIME-X"
        assert notes["billingCycle"] == "ANNUAL"
        assert notes["userId"] == str(sample_customer.id)
        assert notes["upgradeFromSubscriptionId"] == str(active_subscription.id)

    async def test_current_subscription_is_left_active(
        self, service, sample_customer, active_subscription
    ):
        await service.create_upgrade_subscription(
            sample_customer.id, sample_customer.email, "PRO", BillingCycle.MONTHLY
        )

        current = await service.subscription_repo.get(active_subscription.id)
        assert current.has_access()

    async def test_gateway_failure_grants_nothing(
        self, service, sample_customer, active_subscription, mock_payment_provider
    ):
        mock_payment_provider.create_subscription.side_effect = UpstreamError(
            "Razorpay returned 500", status_code=500
        )

        result = await service.create_upgrade_subscription(
            sample_customer.id,
            sample_customer.email,
            "PRO_PRIME-X",
            BillingCycle.MONTHLY,
        )

        assert result.error == BillingErrorCode.UPSTREAM_FAILURE
        assert await CreditLedgerService().get_ledger(email=sample_customer.email) == []

    async def test_first_purchase_has_no_rollover(
        self, service, sample_customer, sample_plans, mock_payment_provider
    ):
        result = await service.create_upgrade_subscription(
            sample_customer.id, sample_customer.email, "PRO", BillingCycle.MONTHLY
        )

        assert result.data.credit_amount == 0
        assert result.data.rolled_over == Decimal(0)
        notes = mock_payment_provider.create_subscription.call_args.kwargs["notes"]
        assert "upgradeFromSubscriptionId" not in notes

    async def test_unknown_plan(self, service, sample_customer, sample_plans):
        result = await service.create_upgrade_subscription(
            sample_customer.id, sample_customer.email, "GOLD", BillingCycle.MONTHLY
        )
        assert result.error == BillingErrorCode.PLAN_NOT_FOUND
