"""
Billing API routes.

Internal endpoints for balances, metered consumption, admin credit
adjustments, upgrades and checkout.
"""

from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import EmailStr

from packages.billing.models.domain.ledger import (
    BillingOverview,
    ConsumeOutcome,
    CreditBalances,
    LedgerEntry,
    UsageRecord,
)
from packages.billing.models.domain.gateway import GatewayPayment
from packages.billing.models.domain.results import BillingResult
from packages.billing.models.domain.trial import (
    OrderCheckout,
    ProrationCredit,
    RecurringCheckout,
    UpgradeCheckout,
)
from packages.billing.models.schemas.billing import (
    AddCreditsRequest,
    ConsumeCreditsRequest,
    DeductCreditsRequest,
    EligibilityResponse,
    OneTimeOrderRequest,
    RecurringCheckoutRequest,
    SyncSubscriptionRequest,
    TrialCreditsRequest,
    UpgradeRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from packages.billing.routes.results import unwrap
from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.credit_ledger_service import CreditLedgerService
from packages.billing.services.proration_service import ProrationService
from packages.billing.services.trial_service import TrialService

router = APIRouter()


# ============================================================================
# Balances
# ============================================================================


@router.get("/overview/{customer_id}", response_model=BillingResult[BillingOverview])
async def get_overview(customer_id: int):
    """Subscription summary, balances and usage cap for one customer."""
    return unwrap(await CreditLedgerService().get_overview(customer_id))


@router.get("/balance", response_model=BillingResult[CreditBalances])
async def get_balance(email: EmailStr):
    return unwrap(await CreditLedgerService().get_balance_by_email(email))


@router.post("/consume", response_model=BillingResult[ConsumeOutcome])
async def consume_credits(request: ConsumeCreditsRequest):
    """
    Charge one metered request.

    Returns 402 when credits run out; the message says whether the free
    trial or the subscription allotment is exhausted.
    """
    return unwrap(
        await CreditLedgerService().consume_credits(
            request.email, request.cost, request.resource, request.request_id
        )
    )


# ============================================================================
# Admin adjustments
# ============================================================================


@router.post("/credits/add", response_model=BillingResult[CreditBalances])
async def add_credits(request: AddCreditsRequest):
    return unwrap(
        await CreditLedgerService().add_credits(
            request.email,
            request.type,
            request.amount,
            request.reason,
            reference_id=request.reference_id,
        )
    )


@router.post("/credits/deduct", response_model=BillingResult[CreditBalances])
async def deduct_credits(request: DeductCreditsRequest):
    return unwrap(
        await CreditLedgerService().deduct_credits(
            request.email,
            request.amount,
            request.deduct_from,
            request.reason,
            reference_id=request.reference_id,
        )
    )


@router.post("/credits/trial", response_model=BillingResult[CreditBalances])
async def grant_trial_credits(request: TrialCreditsRequest):
    """Grant free credits once per email."""
    return unwrap(
        await CreditLedgerService().grant_trial_credits(
            request.email,
            request.amount,
            reason=request.reason,
            reference_id=request.reference_id,
        )
    )


@router.get("/ledger", response_model=List[LedgerEntry])
async def get_ledger(
    email: Optional[EmailStr] = None,
    limit: int = Query(default=100, ge=1, le=1000),
):
    return await CreditLedgerService().get_ledger(email=email, limit=limit)


@router.get("/usage", response_model=List[UsageRecord])
async def get_usage_history(
    email: Optional[EmailStr] = None,
    limit: int = Query(default=100, ge=1, le=1000),
):
    return await CreditLedgerService().get_usage_history(email=email, limit=limit)


@router.post("/sync", response_model=BillingResult[CreditBalances])
async def sync_subscription(request: SyncSubscriptionRequest):
    """Re-derive balances from a subscription after a missed activation."""
    return unwrap(
        await CreditLedgerService().sync_subscription(
            request.customer_id,
            subscription_id=request.subscription_id,
            idempotency_key=request.idempotency_key,
        )
    )


@router.post("/reset", response_model=BillingResult[CreditBalances])
async def reset_subscription(request: SyncSubscriptionRequest):
    return unwrap(
        await CreditLedgerService().reset_subscription(
            request.customer_id,
            subscription_id=request.subscription_id,
            idempotency_key=request.idempotency_key,
        )
    )


# ============================================================================
# Free trial
# ============================================================================


@router.get("/eligibility", response_model=EligibilityResponse)
async def check_eligibility(email: EmailStr):
    eligible = await TrialService().check_eligibility(email)
    return EligibilityResponse(email=email.lower(), eligible=eligible)


# ============================================================================
# Upgrades
# ============================================================================


@router.get("/upgrade/quote/{customer_id}", response_model=ProrationCredit)
async def get_upgrade_quote(customer_id: int):
    """Credit the customer would receive for the rest of the current cycle."""
    return await ProrationService().compute_prepaid_credit(customer_id)


@router.post("/upgrade", response_model=BillingResult[UpgradeCheckout])
async def create_upgrade(request: UpgradeRequest):
    return unwrap(
        await ProrationService().create_upgrade_subscription(
            request.customer_id,
            request.email,
            request.plan_code,
            request.billing_cycle,
            contact=request.contact,
        )
    )


# ============================================================================
# Checkout
# ============================================================================


@router.post("/checkout/order", response_model=BillingResult[OrderCheckout])
async def create_order(request: OneTimeOrderRequest):
    return unwrap(
        await CheckoutService().create_one_time_order(
            request.customer_id, request.plan_code
        )
    )


@router.post("/checkout/subscription", response_model=BillingResult[RecurringCheckout])
async def create_recurring_checkout(request: RecurringCheckoutRequest):
    return unwrap(
        await CheckoutService().create_recurring_checkout(
            request.customer_id,
            request.plan_code,
            billing_cycle=request.billing_cycle,
            contact=request.contact,
            full_name=request.full_name,
        )
    )


@router.post("/checkout/verify", response_model=VerifyPaymentResponse)
async def verify_payment(request: VerifyPaymentRequest):
    valid = CheckoutService().verify_payment_signature(
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
    )
    return VerifyPaymentResponse(valid=valid)


@router.get("/checkout/payments/{payment_id}", response_model=BillingResult[GatewayPayment])
async def get_payment_details(payment_id: str):
    return unwrap(await CheckoutService().get_payment_details(payment_id))
