"""
Repository for the per-customer balance projection.

Callers mutate balances only inside a transaction holding the customer row
lock; this repository does no locking of its own.
"""

from decimal import Decimal
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.balance import CustomerBalanceOverrideEntity
from packages.billing.models.domain.enums import BalanceKey
from packages.billing.models.domain.ledger import BalanceSnapshot
from common.core.otel_axiom_exporter import trace_span


class BalanceRepository(BaseRepository[CustomerBalanceOverrideEntity, BalanceSnapshot]):
    def __init__(self, db_session=None):
        super().__init__(CustomerBalanceOverrideEntity, BalanceSnapshot, db_session)

    @trace_span
    async def get_snapshot(self, customer_id: int) -> BalanceSnapshot:
        async with self._get_session() as session:
            result = await session.execute(
                select(CustomerBalanceOverrideEntity).where(
                    CustomerBalanceOverrideEntity.customer_id == customer_id
                )
            )
            values = {}
            for row in result.scalars().all():
                try:
                    values[BalanceKey(row.key)] = Decimal(row.value or 0)
                except ValueError:
                    continue
            return BalanceSnapshot.from_values(values)

    @trace_span
    async def set_values(
        self, customer_id: int, values: dict[BalanceKey, Decimal]
    ) -> None:
        """Upsert the given keys; keys not mentioned are left alone."""
        if not values:
            return
        async with self._get_session() as session:
            result = await session.execute(
                select(CustomerBalanceOverrideEntity).where(
                    CustomerBalanceOverrideEntity.customer_id == customer_id,
                    CustomerBalanceOverrideEntity.key.in_([k.value for k in values]),
                )
            )
            existing = {row.key: row for row in result.scalars().all()}
            for key, value in values.items():
                row = existing.get(key.value)
                if row is None:
                    session.add(
                        CustomerBalanceOverrideEntity(
                            customer_id=customer_id, key=key.value, value=value
                        )
                    )
                else:
                    row.value = value
            await session.flush()
