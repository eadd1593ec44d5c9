"""
Database entity for subscriptions.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Boolean
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType


class SubscriptionEntity(Base):
    """
    Customer subscription database entity.

    Rows are never deleted: ACTIVE -> CANCELED is the only transition.
    At most one ACTIVE row per customer, maintained by the webhook reconciler.
    """

    __tablename__ = "subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(
        BigIntegerType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id = Column(BigIntegerType, ForeignKey("plans.id"), nullable=False)

    status = Column(String(20), nullable=False, index=True)  # ACTIVE, CANCELED

    started_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    cancel_at = Column(DateTime(timezone=True), nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=True)

    # Payment provider
    payment_provider = Column(String(50), nullable=False, server_default="RAZORPAY")
    provider_subscription_id = Column(
        String(255), nullable=True, unique=True, index=True
    )
    provider_payment_id = Column(String(255), nullable=True)

    # Standard timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_subscription_customer_status", "customer_id", "status"),
    )
