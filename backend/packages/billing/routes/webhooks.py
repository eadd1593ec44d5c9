"""
Webhook endpoints for billing events.

Public endpoint (no auth required) for Razorpay webhooks.
"""

from typing import Any

from fastapi import APIRouter, Request

from packages.billing.webhooks.razorpay_webhook import handle_razorpay_webhook

router = APIRouter()


@router.post("/webhooks/razorpay")
async def razorpay_webhook(request: Request) -> dict[str, Any]:
    """
    Receive webhook events from Razorpay.

    No authentication required - webhook signature validated internally.
    """
    return await handle_razorpay_webhook(request)
