"""
Domain models for subscriptions.
"""

import math
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from common.core.clock import ensure_utc, utcnow
from packages.billing.models.domain.enums import (
    SubscriptionStatus,
    PaymentProvider,
)


class Subscription(BaseModel):
    """
    Customer subscription domain model.

    A row is created ACTIVE and may move to CANCELED once; it is never
    reactivated or deleted.
    """

    id: int
    customer_id: int
    plan_id: int

    status: SubscriptionStatus

    started_at: datetime
    expires_at: datetime
    cancel_at: Optional[datetime] = None
    auto_renew: bool = True

    payment_provider: PaymentProvider = PaymentProvider.RAZORPAY
    provider_subscription_id: Optional[str] = None
    provider_payment_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_validator(
        "started_at", "expires_at", "cancel_at", "created_at", "updated_at"
    )
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def has_access(self) -> bool:
        return self.status.has_access()

    def days_remaining(self, now: Optional[datetime] = None) -> int:
        """Whole days left in the current period, rounded up."""
        seconds = (self.expires_at - (now or utcnow())).total_seconds()
        return max(0, math.ceil(seconds / 86400))


class SubscriptionCreateModel(BaseModel):
    """Model for creating a new subscription."""

    customer_id: int
    plan_id: int
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    started_at: datetime
    expires_at: datetime
    auto_renew: bool = True
    payment_provider: PaymentProvider = PaymentProvider.RAZORPAY
    provider_subscription_id: Optional[str] = None
    provider_payment_id: Optional[str] = None

    class Config:
        use_enum_values = True


class SubscriptionUpdateModel(BaseModel):
    """Model for updating a subscription."""

    plan_id: Optional[int] = None
    status: Optional[SubscriptionStatus] = None
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    auto_renew: Optional[bool] = None
    provider_subscription_id: Optional[str] = None
    provider_payment_id: Optional[str] = None

    class Config:
        use_enum_values = True


class SubscriberDetail(BaseModel):
    """One row of the active-subscriber admin listing."""

    subscription_id: int
    customer_id: int
    email: Optional[str] = None
    full_name: Optional[str] = None
    plan_code: Optional[str] = None
    plan_name: Optional[str] = None
    billing_cycle: str
    amount: Optional[int] = None
    started_at: datetime
    expires_at: datetime
    days_remaining: int
    auto_renew: bool
    is_trial: bool = False
    provider_subscription_id: Optional[str] = None


class AutopayStatus(BaseModel):
    has_subscription: bool
    provider_status: Optional[str] = None
    should_restrict: bool = False
