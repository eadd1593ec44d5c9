"""
Repository for free-trial eligibility rows.
"""

from typing import Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from common.repositories.base import BaseRepository
from packages.billing.models.database.eligible_email import EligibleEmailEntity
from packages.billing.models.domain.trial import EligibleEmail
from common.core.otel_axiom_exporter import trace_span


class EligibleEmailRepository(BaseRepository[EligibleEmailEntity, EligibleEmail]):
    def __init__(self, db_session=None):
        super().__init__(EligibleEmailEntity, EligibleEmail, db_session)

    @trace_span
    async def get_by_email(self, email: str) -> Optional[EligibleEmail]:
        return await self._fetch_one(
            select(EligibleEmailEntity).where(EligibleEmailEntity.email == email)
        )

    @trace_span
    async def insert_if_absent(
        self, email: str, is_used: bool
    ) -> Tuple[EligibleEmail, bool]:
        """
        Insert a row for email; on a unique conflict return the existing row.

        Returns:
            (row, created)
        """
        async with self._get_session() as session:
            db_obj = EligibleEmailEntity(email=email, is_used=is_used)
            try:
                async with session.begin_nested():
                    session.add(db_obj)
            except IntegrityError:
                result = await session.execute(
                    select(EligibleEmailEntity).where(
                        EligibleEmailEntity.email == email
                    )
                )
                return self._entity_to_domain(result.scalar_one()), False
            await session.refresh(db_obj)
            return self._entity_to_domain(db_obj), True

    @trace_span
    async def mark_used(self, email: str) -> None:
        """Set is_used, inserting the row if needed. Never clears the flag."""
        row, created = await self.insert_if_absent(email, is_used=True)
        if created or row.is_used:
            return
        async with self._get_session() as session:
            await session.execute(
                update(EligibleEmailEntity)
                .where(EligibleEmailEntity.email == email)
                .values(is_used=True)
            )
            await session.flush()
