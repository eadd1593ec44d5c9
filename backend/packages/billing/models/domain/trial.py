"""Domain models for free-trial eligibility and upgrades."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, field_validator

from common.core.clock import ensure_utc


class EligibleEmail(BaseModel):
    id: int
    email: str
    is_used: bool
    created_at: datetime

    class Config:
        from_attributes = True

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class EligibleEmailCreateModel(BaseModel):
    email: str
    is_used: bool = False


class ProrationCredit(BaseModel):
    """Unused value of the current subscription, in paise, floored."""

    credit_amount: int = 0
    days_left: int = 0
    per_day: int = 0
    source_subscription_id: Optional[int] = None
    source_plan_code: Optional[str] = None


class UpgradeCheckout(BaseModel):
    provider_subscription_id: str
    provider_plan_id: str
    provider_customer_id: str
    short_url: Optional[str] = None
    plan_code: str
    billing_cycle: str
    amount: int
    credit_amount: int
    rolled_over: Decimal = Decimal(0)


class OrderCheckout(BaseModel):
    order_id: str
    amount: int
    currency: str
    plan_code: str
    key_id: str


class RecurringCheckout(BaseModel):
    provider_subscription_id: str
    provider_plan_id: str
    provider_customer_id: str
    short_url: Optional[str] = None
    plan_code: str
    billing_cycle: str
    amount: int
    trial_days: int = 0
    start_at: Optional[datetime] = None
    key_id: str
