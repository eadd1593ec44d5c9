"""
Public plan catalog for pricing pages.
"""

from fastapi import APIRouter

from packages.billing.models.domain.plans import PlansResponse
from packages.billing.services.plans_service import PlansService

router = APIRouter()


@router.get("", response_model=PlansResponse)
async def list_plans():
    """Monthly and annual prices in paise, plus display strings and trial eligibility."""
    return await PlansService().get_all_plans()
