"""
Per-customer balance projection.

One row per (customer, key); a missing row reads as zero.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, MoneyType


class CustomerBalanceOverrideEntity(Base):
    __tablename__ = "customer_balance_overrides"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(
        BigIntegerType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key = Column(String(50), nullable=False)
    value = Column(MoneyType, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("customer_id", "key", name="uq_balance_customer_key"),
    )
