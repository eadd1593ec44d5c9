from typing import Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.customers.models.database.customer import CustomerEntity
from packages.customers.models.domain.customer import Customer
from common.core.otel_axiom_exporter import trace_span


class CustomerRepository(BaseRepository[CustomerEntity, Customer]):
    def __init__(self, db_session=None):
        super().__init__(CustomerEntity, Customer, db_session)

    @trace_span
    async def get_by_email(self, email: str) -> Optional[Customer]:
        """Get customer by email (case-insensitive)."""
        return await self._fetch_one(
            select(CustomerEntity).where(CustomerEntity.email == email.strip().lower())
        )

    @trace_span
    async def lock_for_update(self, customer_id: int) -> Optional[Customer]:
        """
        Take a row lock on the customer for the rest of the current transaction.

        Every balance mutation for a customer serializes on this row.
        """
        return await self._fetch_one(
            select(CustomerEntity)
            .where(CustomerEntity.id == customer_id)
            .with_for_update()
        )
