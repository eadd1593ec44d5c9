"""
Repository for subscription management.
"""

from typing import List, Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from common.repositories.base import BaseRepository
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
)
from packages.billing.models.domain.enums import SubscriptionStatus
from common.core.otel_axiom_exporter import trace_span, get_logger

logger = get_logger(__name__)


class SubscriptionRepository(BaseRepository[SubscriptionEntity, Subscription]):
    """Repository for customer subscriptions."""

    def __init__(self, db_session=None):
        super().__init__(SubscriptionEntity, Subscription, db_session)

    @trace_span
    async def get_active_for_customer(self, customer_id: int) -> Optional[Subscription]:
        """Latest ACTIVE subscription for a customer."""
        return await self._fetch_one(
            select(SubscriptionEntity)
            .where(
                SubscriptionEntity.customer_id == customer_id,
                SubscriptionEntity.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(SubscriptionEntity.started_at.desc(), SubscriptionEntity.id.desc())
        )

    @trace_span
    async def list_active_for_customer(self, customer_id: int) -> List[Subscription]:
        return await self._fetch_all(
            select(SubscriptionEntity)
            .where(
                SubscriptionEntity.customer_id == customer_id,
                SubscriptionEntity.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(SubscriptionEntity.id)
        )

    @trace_span
    async def list_active(self) -> List[Subscription]:
        return await self._fetch_all(
            select(SubscriptionEntity)
            .where(SubscriptionEntity.status == SubscriptionStatus.ACTIVE.value)
            .order_by(SubscriptionEntity.expires_at)
        )

    @trace_span
    async def list_for_customer(self, customer_id: int) -> List[Subscription]:
        return await self._fetch_all(
            select(SubscriptionEntity)
            .where(SubscriptionEntity.customer_id == customer_id)
            .order_by(SubscriptionEntity.id)
        )

    @trace_span
    async def count_for_customer(self, customer_id: int) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(SubscriptionEntity.id)).where(
                    SubscriptionEntity.customer_id == customer_id
                )
            )
            return result.scalar_one()

    @trace_span
    async def get_by_provider_subscription_id(
        self, provider_subscription_id: str
    ) -> Optional[Subscription]:
        return await self._fetch_one(
            select(SubscriptionEntity).where(
                SubscriptionEntity.provider_subscription_id == provider_subscription_id
            )
        )

    @trace_span
    async def create_if_absent(
        self, create_model: SubscriptionCreateModel
    ) -> Tuple[Subscription, bool]:
        """
        Insert a subscription unless its provider subscription id is taken.

        The unique constraint on provider_subscription_id decides races between
        concurrent deliveries; the loser gets the winner's row back.

        Returns:
            (subscription, created)
        """
        data = create_model.model_dump(exclude_none=True)
        async with self._get_session() as session:
            db_obj = SubscriptionEntity(**data)
            try:
                async with session.begin_nested():
                    session.add(db_obj)
            except IntegrityError:
                logger.info(
                    "Subscription already linked, re-reading",
                    extra={
                        "provider_subscription_id": create_model.provider_subscription_id
                    },
                )
                result = await session.execute(
                    select(SubscriptionEntity).where(
                        SubscriptionEntity.provider_subscription_id
                        == create_model.provider_subscription_id
                    )
                )
                return self._entity_to_domain(result.scalar_one()), False

            await session.refresh(db_obj)
            return self._entity_to_domain(db_obj), True
