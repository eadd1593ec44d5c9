"""
Subscription API routes.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, status

from packages.billing.models.domain.results import BillingResult
from packages.billing.models.domain.subscription import (
    AutopayStatus,
    SubscriberDetail,
    Subscription,
)
from packages.billing.models.schemas.billing import (
    ActivateFallbackRequest,
    CancelSubscriptionRequest,
)
from packages.billing.routes.results import unwrap
from packages.billing.services.subscription_service import SubscriptionService

router = APIRouter()


@router.get("/active", response_model=List[SubscriberDetail])
async def list_active_subscriptions():
    """Admin listing of every active subscriber."""
    return await SubscriptionService().list_active_subscriptions()


@router.get("/customer/{customer_id}", response_model=Subscription)
async def get_active_subscription(customer_id: int):
    subscription = await SubscriptionService().get_active_subscription(customer_id)
    if not subscription:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription"
        )
    return subscription


@router.get("/customer/{customer_id}/autopay", response_model=AutopayStatus)
async def verify_autopay_status(customer_id: int):
    """Whether the gateway mandate behind the active subscription still works."""
    return await SubscriptionService().verify_autopay_status(customer_id)


@router.get("/provider/{provider_subscription_id}", response_model=Subscription)
async def get_by_provider_subscription_id(provider_subscription_id: str):
    subscription = await SubscriptionService().get_by_provider_subscription_id(
        provider_subscription_id
    )
    if not subscription:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found"
        )
    return subscription


@router.post("/{subscription_id}/cancel", response_model=BillingResult[Subscription])
async def cancel_subscription(
    subscription_id: int, request: Optional[CancelSubscriptionRequest] = None
):
    request = request or CancelSubscriptionRequest()
    return unwrap(
        await SubscriptionService().cancel(
            subscription_id, cancel_on_provider=request.cancel_on_provider
        )
    )


@router.post("/fallback", response_model=BillingResult[Subscription])
async def activate_fallback(request: ActivateFallbackRequest):
    """
    Activate from the client after a confirmed payment.

    Safe to race with the webhook; whichever arrives second is a no-op.
    """
    return unwrap(
        await SubscriptionService().activate_fallback(
            request.customer_id,
            request.plan_code,
            request.provider_subscription_id,
            billing_cycle=request.billing_cycle,
            provider_payment_id=request.provider_payment_id,
        )
    )
