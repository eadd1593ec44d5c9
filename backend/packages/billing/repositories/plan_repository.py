"""
Repository for the plan catalog.
"""

from typing import List, Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.plan import PlanEntity
from packages.billing.models.domain.plans import Plan
from common.core.otel_axiom_exporter import trace_span


class PlanRepository(BaseRepository[PlanEntity, Plan]):
    def __init__(self, db_session=None):
        super().__init__(PlanEntity, Plan, db_session)

    @trace_span
    async def get_by_code(self, code: str) -> Optional[Plan]:
        return await self._fetch_one(select(PlanEntity).where(PlanEntity.code == code))

    @trace_span
    async def list_all(self) -> List[Plan]:
        return await self._fetch_all(select(PlanEntity).order_by(PlanEntity.price))
