"""
Database entity for the plan catalog.
"""

from sqlalchemy import Column, String, DateTime, Integer, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class PlanEntity(Base):
    """
    Purchasable plan.

    ``price`` is the base (monthly) price in paise. Per-cycle prices used for
    billing come from the central price table, not from this column.
    """

    __tablename__ = "plans"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, server_default="INR")
    billing_cycle = Column(String(20), nullable=False, server_default="MONTHLY")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
