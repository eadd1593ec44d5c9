"""
Repositories for the append-only ledger and usage tables.
"""

from typing import List, Optional
from sqlalchemy import select, exists

from common.repositories.base import BaseRepository
from packages.billing.models.database.ledger import LedgerEntryEntity, UsageRecordEntity
from packages.billing.models.domain.ledger import LedgerEntry, UsageRecord
from common.core.otel_axiom_exporter import trace_span


class LedgerEntryRepository(BaseRepository[LedgerEntryEntity, LedgerEntry]):
    def __init__(self, db_session=None):
        super().__init__(LedgerEntryEntity, LedgerEntry, db_session)

    @trace_span
    async def list_entries(
        self, email: Optional[str] = None, limit: Optional[int] = None
    ) -> List[LedgerEntry]:
        """Entries in insertion order, optionally for one email."""
        query = select(LedgerEntryEntity).order_by(LedgerEntryEntity.id)
        if email:
            query = query.where(LedgerEntryEntity.email == email)
        if limit:
            query = query.limit(limit)
        return await self._fetch_all(query)

    @trace_span
    async def idempotency_key_exists(self, key: str) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                select(exists().where(LedgerEntryEntity.idempotency_key == key))
            )
            return bool(result.scalar())


class UsageRecordRepository(BaseRepository[UsageRecordEntity, UsageRecord]):
    def __init__(self, db_session=None):
        super().__init__(UsageRecordEntity, UsageRecord, db_session)

    @trace_span
    async def list_records(
        self, email: Optional[str] = None, limit: Optional[int] = None
    ) -> List[UsageRecord]:
        query = select(UsageRecordEntity).order_by(UsageRecordEntity.id)
        if email:
            query = query.where(UsageRecordEntity.email == email)
        if limit:
            query = query.limit(limit)
        return await self._fetch_all(query)

    @trace_span
    async def get_by_request_id(
        self, customer_id: int, request_id: str
    ) -> Optional[UsageRecord]:
        return await self._fetch_one(
            select(UsageRecordEntity).where(
                UsageRecordEntity.customer_id == customer_id,
                UsageRecordEntity.request_id == request_id,
            )
        )
