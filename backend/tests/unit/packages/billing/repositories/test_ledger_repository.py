"""
Unit tests for the ledger, usage and balance repositories.
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from packages.billing.models.domain.enums import (
    BalanceKey,
    CreditType,
    LedgerDirection,
    LedgerSource,
)
from packages.billing.models.domain.ledger import (
    LedgerEntryCreateModel,
    UsageRecordCreateModel,
)
from packages.billing.repositories.balance_repository import BalanceRepository
from packages.billing.repositories.ledger_repository import (
    LedgerEntryRepository,
    UsageRecordRepository,
)


def _entry(customer, amount="100", **kwargs) -> LedgerEntryCreateModel:
    return LedgerEntryCreateModel(
        customer_id=customer.id,
        email=customer.email,
        type=kwargs.pop("type", CreditType.PREPAID),
        direction=kwargs.pop("direction", LedgerDirection.CREDIT),
        amount=Decimal(amount),
        reason=kwargs.pop("reason", "test"),
        source=kwargs.pop("source", LedgerSource.ADMIN),
        **kwargs,
    )


@pytest.mark.asyncio
class TestLedgerEntryRepository:
    async def test_create_entry(self, test_db, sample_customer):
        repo = LedgerEntryRepository(test_db)

        entry = await repo.create(_entry(sample_customer, "129900"))

        assert entry.id is not None
        assert entry.type == CreditType.PREPAID
        assert entry.direction == LedgerDirection.CREDIT
        assert entry.amount == Decimal("129900")
        assert entry.created_at.tzinfo is not None

    async def test_list_entries_filters_by_email(
        self, test_db, sample_customer, second_customer
    ):
        repo = LedgerEntryRepository(test_db)
        first = await repo.create(_entry(sample_customer, "10"))
        await repo.create(_entry(second_customer, "20"))
        second = await repo.create(
            _entry(sample_customer, "5", direction=LedgerDirection.DEBIT)
        )

        entries = await repo.list_entries(email=sample_customer.email)
        everything = await repo.list_entries()
        limited = await repo.list_entries(limit=1)

        assert [e.id for e in entries] == [first.id, second.id]
        assert len(everything) == 3
        assert [e.id for e in limited] == [first.id]

    async def test_idempotency_key_exists(self, test_db, sample_customer):
        repo = LedgerEntryRepository(test_db)
        await repo.create(
            _entry(sample_customer, idempotency_key="activation:sub_1:pay_1")
        )

        assert await repo.idempotency_key_exists("activation:sub_1:pay_1")
        assert not await repo.idempotency_key_exists("activation:sub_1:pay_2")

    async def test_idempotency_key_is_unique(self, test_db, sample_customer):
        repo = LedgerEntryRepository(test_db)
        await repo.create(_entry(sample_customer, idempotency_key="dup"))

        with pytest.raises(IntegrityError):
            async with test_db.begin_nested():
                await repo.create(_entry(sample_customer, idempotency_key="dup"))


@pytest.mark.asyncio
class TestUsageRecordRepository:
    async def test_get_by_request_id_is_per_customer(
        self, test_db, sample_customer, second_customer
    ):
        repo = UsageRecordRepository(test_db)
        record = await repo.create(
            UsageRecordCreateModel(
                customer_id=sample_customer.id,
                email=sample_customer.email,
                resource="transcription",
                cost=Decimal("12.50"),
                request_id="req-1",
            )
        )

        found = await repo.get_by_request_id(sample_customer.id, "req-1")
        other = await repo.get_by_request_id(second_customer.id, "req-1")

        assert found.id == record.id
        assert found.cost == Decimal("12.50")
        assert other is None
        assert [r.id for r in await repo.list_records(email=sample_customer.email)] == [
            record.id
        ]


@pytest.mark.asyncio
class TestBalanceRepository:
    async def test_missing_keys_read_as_zero(self, test_db, sample_customer):
        snapshot = await BalanceRepository(test_db).get_snapshot(sample_customer.id)

        assert snapshot.prepaid == Decimal(0)
        assert snapshot.free == Decimal(0)
        assert snapshot.usage_used == Decimal(0)

    async def test_set_values_upserts_only_given_keys(self, test_db, sample_customer):
        repo = BalanceRepository(test_db)
        await repo.set_values(
            sample_customer.id,
            {
                BalanceKey.CREDITS_PREPAID: Decimal("75900"),
                BalanceKey.CREDITS_FREE: Decimal("50"),
            },
        )

        await repo.set_values(
            sample_customer.id, {BalanceKey.CREDITS_PREPAID: Decimal("1000")}
        )
        snapshot = await repo.get_snapshot(sample_customer.id)

        assert snapshot.prepaid == Decimal("1000")
        assert snapshot.free == Decimal("50")
