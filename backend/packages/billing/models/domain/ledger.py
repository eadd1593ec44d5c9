"""
Domain models for the credit ledger.

Amounts are Decimal throughout; ``money()`` rounds at the service boundary.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from pydantic import BaseModel, field_validator

from common.core.clock import ensure_utc
from common.core.constants import MONEY_DECIMAL_PLACES
from packages.billing.models.domain.enums import (
    BalanceKey,
    CreditType,
    LedgerDirection,
    LedgerSource,
)

_QUANT = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def money(value) -> Decimal:
    """Round a monetary value to two decimals, half up."""
    return Decimal(str(value)).quantize(_QUANT, rounding=ROUND_HALF_UP)


class LedgerEntry(BaseModel):
    id: int
    customer_id: int
    email: str
    type: CreditType
    direction: LedgerDirection
    amount: Decimal
    reason: str
    source: LedgerSource
    reference_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class LedgerEntryCreateModel(BaseModel):
    customer_id: int
    email: str
    type: CreditType
    direction: LedgerDirection
    amount: Decimal
    reason: str
    source: LedgerSource
    reference_id: Optional[str] = None
    idempotency_key: Optional[str] = None

    class Config:
        use_enum_values = True


class UsageRecord(BaseModel):
    id: int
    customer_id: int
    email: str
    resource: str
    cost: Decimal
    request_id: str
    created_at: datetime

    class Config:
        from_attributes = True

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class UsageRecordCreateModel(BaseModel):
    customer_id: int
    email: str
    resource: str
    cost: Decimal
    request_id: str


class BalanceSnapshot(BaseModel):
    """All four projection values for one customer. Missing keys are zero."""

    prepaid: Decimal = Decimal(0)
    free: Decimal = Decimal(0)
    usage_used: Decimal = Decimal(0)
    usage_prepaid_used: Decimal = Decimal(0)

    @classmethod
    def from_values(cls, values: dict[BalanceKey, Decimal]) -> "BalanceSnapshot":
        return cls(
            prepaid=values.get(BalanceKey.CREDITS_PREPAID, Decimal(0)),
            free=values.get(BalanceKey.CREDITS_FREE, Decimal(0)),
            usage_used=values.get(BalanceKey.USAGE_USED, Decimal(0)),
            usage_prepaid_used=values.get(BalanceKey.USAGE_PREPAID_USED, Decimal(0)),
        )


class CreditBalances(BaseModel):
    prepaid: Decimal
    free: Decimal

    @field_validator("prepaid", "free")
    @classmethod
    def _round(cls, v: Decimal) -> Decimal:
        return money(v)

    @property
    def total(self) -> Decimal:
        return self.prepaid + self.free


class ConsumeOutcome(BaseModel):
    """Result payload of a successful consumption."""

    balances: CreditBalances
    free_used: Decimal
    prepaid_used: Decimal
    free_trial: bool = False


class UsageCap(BaseModel):
    total: Decimal
    used: Decimal
    prepaid_used: Decimal
    remaining: Decimal


class SubscriptionSummary(BaseModel):
    subscription_id: int
    plan_code: str
    plan_name: str
    status: str
    billing_cycle: str
    started_at: datetime
    expires_at: datetime
    days_remaining: int
    auto_renew: bool
    is_free_trial: bool = False


class BillingOverview(BaseModel):
    customer_id: int
    email: str
    account_tier: str
    subscription: Optional[SubscriptionSummary] = None
    balances: CreditBalances
    usage_cap: UsageCap
    next_invoice_amount: Optional[int] = None  # paise
    currency: str = "INR"
