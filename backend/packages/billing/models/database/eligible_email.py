"""
Free-trial eligibility, keyed by email so it survives account deletion and
re-registration.
"""

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class EligibleEmailEntity(Base):
    __tablename__ = "eligible_emails"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    # Monotonic: once True it is never reset
    is_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
