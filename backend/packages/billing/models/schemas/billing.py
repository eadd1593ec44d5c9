"""
API schemas for billing operations.

Request and response models for billing endpoints.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from packages.billing.models.domain.enums import BillingCycle, CreditType, DeductFrom


# ============================================================================
# Credit Schemas
# ============================================================================


class ConsumeCreditsRequest(BaseModel):
    """Charge one metered request against the customer's credits."""

    email: EmailStr
    cost: Decimal = Field(..., gt=0)
    resource: str = Field(..., min_length=1, max_length=100)
    request_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Caller-supplied id; a repeated id is not charged again",
    )


class AddCreditsRequest(BaseModel):
    email: EmailStr
    type: CreditType
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)
    reference_id: Optional[str] = None


class DeductCreditsRequest(BaseModel):
    email: EmailStr
    amount: Decimal = Field(..., gt=0)
    deduct_from: DeductFrom = DeductFrom.AUTO
    reason: str = Field(..., min_length=1, max_length=255)
    reference_id: Optional[str] = None


class TrialCreditsRequest(BaseModel):
    email: EmailStr
    amount: Decimal = Field(..., gt=0)
    reason: str = "Free trial credits"
    reference_id: Optional[str] = None


class SyncSubscriptionRequest(BaseModel):
    """Manual recovery: reset balances from a subscription's cycle price."""

    customer_id: int
    subscription_id: Optional[int] = None
    idempotency_key: Optional[str] = Field(default=None, max_length=255)


# ============================================================================
# Eligibility Schemas
# ============================================================================


class EligibilityResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str
    eligible: bool


# ============================================================================
# Subscription Schemas
# ============================================================================


class CancelSubscriptionRequest(BaseModel):
    cancel_on_provider: bool = True


class ActivateFallbackRequest(BaseModel):
    """Sent by the checkout page when payment succeeded but no webhook arrived yet."""

    customer_id: int
    plan_code: str
    provider_subscription_id: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    provider_payment_id: Optional[str] = None


# ============================================================================
# Upgrade / Checkout Schemas
# ============================================================================


class UpgradeRequest(BaseModel):
    customer_id: int
    email: EmailStr
    plan_code: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    contact: Optional[str] = None


class OneTimeOrderRequest(BaseModel):
    customer_id: int
    plan_code: str


class RecurringCheckoutRequest(BaseModel):
    customer_id: int
    plan_code: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    contact: Optional[str] = None
    full_name: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    """Checkout widget handler response."""

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class VerifyPaymentResponse(BaseModel):
    valid: bool
