"""Service for retrieving billing plan information."""

from typing import List, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import BillingCycle
from packages.billing.models.domain.plans import (
    Plan,
    PlanCreateModel,
    PlanInfo,
    PlansResponse,
)
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.services.pricing import cycle_price, is_trial_plan

logger = get_logger(__name__)

# Catalog rows every environment starts with
DEFAULT_PLANS = [
    PlanCreateModel(
        code="PRO",
        name="Pro",
        description="For individual creators",
        price=75900,
    ),
    PlanCreateModel(
        code="PRO_PRIME-X",
        name="Pro Prime X",
        description="For teams and heavy usage",
        price=129900,
    ),
]


def format_paise(amount: int) -> str:
    rupees = amount / 100
    if rupees == int(rupees):
        return f"₹{int(rupees):,}"
    return f"₹{rupees:,.2f}"


class PlansService:
    """Service for retrieving plan information."""

    def __init__(self):
        self.plan_repo = PlanRepository()

    @trace_span
    async def find_plan_by_code(self, code: Optional[str]) -> Optional[Plan]:
        if not code:
            return None
        return await self.plan_repo.get_by_code(code)

    @trace_span
    async def get_plan(self, plan_id: int) -> Optional[Plan]:
        return await self.plan_repo.get(plan_id)

    @trace_span
    async def list_plans(self) -> List[Plan]:
        return await self.plan_repo.list_all()

    def price_for(self, plan: Plan, cycle: BillingCycle) -> int:
        """Per-cycle price of a catalog plan from the central price table."""
        return cycle_price(plan.code, cycle, base_price=plan.price)

    @trace_span
    async def get_all_plans(self) -> PlansResponse:
        """Get all available plans with monthly and annual pricing."""
        plans = []
        for plan in await self.list_plans():
            monthly = self.price_for(plan, BillingCycle.MONTHLY)
            annual = self.price_for(plan, BillingCycle.ANNUAL)
            plans.append(
                PlanInfo(
                    code=plan.code,
                    name=plan.name,
                    description=plan.description,
                    currency=plan.currency,
                    monthly_price=monthly,
                    annual_price=annual,
                    monthly_price_formatted=format_paise(monthly),
                    annual_price_formatted=format_paise(annual),
                    trial_eligible=is_trial_plan(plan.code),
                )
            )
        return PlansResponse(plans=plans)

    @trace_span
    async def seed_default_plans(self) -> List[Plan]:
        """Create any missing default plans. Existing rows are left untouched."""
        seeded = []
        for plan_data in DEFAULT_PLANS:
            existing = await self.plan_repo.get_by_code(plan_data.code)
            if existing:
                seeded.append(existing)
                continue
            plan = await self.plan_repo.create(
                plan_data.model_copy(update={"currency": settings.default_currency})
            )
            logger.info(
                f"Seeded plan {plan.code}",
                extra={"plan_code": plan.code, "price": plan.price},
            )
            seeded.append(plan)
        return seeded
