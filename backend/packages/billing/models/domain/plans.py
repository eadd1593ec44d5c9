"""Domain models for billing plans."""

from typing import Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import BillingCycle


class Plan(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    price: int  # base monthly price, paise
    currency: str = "INR"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    class Config:
        from_attributes = True


class PlanCreateModel(BaseModel):
    code: str
    name: str
    description: Optional[str] = None
    price: int
    currency: str = "INR"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    class Config:
        use_enum_values = True


class PlanInfo(BaseModel):
    """Public plan listing with per-cycle prices from the central price table."""

    code: str
    name: str
    description: Optional[str] = None
    currency: str
    monthly_price: int
    annual_price: int
    monthly_price_formatted: str
    annual_price_formatted: str
    trial_eligible: bool = False


class PlansResponse(BaseModel):
    """Response model for plans endpoint."""

    plans: list[PlanInfo]
