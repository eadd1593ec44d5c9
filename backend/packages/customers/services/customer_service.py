from typing import Optional

from packages.customers.repositories.customer_repository import CustomerRepository
from packages.customers.models.domain.customer import (
    AccountTier,
    Customer,
    CustomerUpdateModel,
)
from common.core.otel_axiom_exporter import trace_span, get_logger

logger = get_logger(__name__)


class CustomerService:
    """Read-mostly access to the customer directory."""

    def __init__(self):
        self.customer_repo = CustomerRepository()

    @trace_span
    async def get_customer(self, customer_id: int) -> Optional[Customer]:
        return await self.customer_repo.get(customer_id)

    @trace_span
    async def get_by_email(self, email: Optional[str]) -> Optional[Customer]:
        if not email:
            return None
        return await self.customer_repo.get_by_email(email)

    @trace_span
    async def resolve(
        self, customer_id: Optional[int] = None, email: Optional[str] = None
    ) -> Optional[Customer]:
        """Look a customer up by id first, then by email."""
        if customer_id is not None:
            customer = await self.customer_repo.get(customer_id)
            if customer:
                return customer
        return await self.get_by_email(email)

    @trace_span
    async def set_account_tier(self, customer_id: int, tier: AccountTier) -> None:
        updated = await self.customer_repo.update(
            customer_id, CustomerUpdateModel(account_tier=tier)
        )
        if updated:
            logger.info(
                f"Customer {customer_id} account tier set to {tier.value}",
                extra={"customer_id": customer_id, "account_tier": tier.value},
            )
