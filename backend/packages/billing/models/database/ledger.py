"""
Append-only ledger and usage tables.

Neither table is ever updated or deleted from; balances live in
``customer_balance_overrides`` and are the source of truth for enforcement.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, MoneyType


class LedgerEntryEntity(Base):
    __tablename__ = "ledger_entries"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(
        BigIntegerType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String, nullable=False, index=True)
    type = Column(String(20), nullable=False)  # prepaid, free
    direction = Column(String(10), nullable=False)  # credit, debit
    amount = Column(MoneyType, nullable=False)
    reason = Column(String(255), nullable=False)
    source = Column(String(20), nullable=False)  # admin, system, subscription
    reference_id = Column(String(255), nullable=True)
    # Set for entries that must be written at most once (webhook activations)
    idempotency_key = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class UsageRecordEntity(Base):
    __tablename__ = "usage_records"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(
        BigIntegerType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String, nullable=False, index=True)
    resource = Column(String(255), nullable=False)
    cost = Column(MoneyType, nullable=False)
    request_id = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        UniqueConstraint("customer_id", "request_id", name="uq_usage_customer_request"),
        Index("idx_usage_customer_created", "customer_id", "created_at"),
    )
