from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class CustomerEntity(Base):
    __tablename__ = "customers"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=True)
    contact = Column(String, nullable=True)
    status = Column(String(20), nullable=False, server_default="PENDING")
    account_tier = Column(String(20), nullable=False, server_default="VISITOR")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
