"""
Central price table.

Every amount billing charges, expects or credits comes from here: checkout,
underpayment checks, plan inference from webhook amounts, activation credits
and proration. All prices are in paise.
"""

import calendar
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from common.core.config import settings
from packages.billing.models.domain.enums import BillingCycle

PLAN_CYCLE_PRICES: dict[str, dict[BillingCycle, int]] = {
    "PRO": {
        BillingCycle.MONTHLY: 75900,
        BillingCycle.ANNUAL: 739900,
    },
    "PRO_PRIME-X": {
        BillingCycle.MONTHLY: 129900,
        BillingCycle.ANNUAL: 1259900,
    },
}

# Plans missing from the table are billed annually at 12 months less 10%
ANNUAL_FALLBACK_FACTOR = Decimal("0.9")

# A subscription spanning at least this many days is an annual one
ANNUAL_SPAN_THRESHOLD_DAYS = 300


def annual_fallback_price(monthly_price: int) -> int:
    return int(
        (Decimal(monthly_price) * 12 * ANNUAL_FALLBACK_FACTOR).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
    )


def cycle_price(
    plan_code: Optional[str],
    cycle: BillingCycle,
    base_price: Optional[int] = None,
) -> Optional[int]:
    """
    Price of one billing cycle of a plan.

    Falls back to the plan's base monthly price (and the annual fallback
    derived from it) for plans not in the table. Returns None when neither
    is known.
    """
    table = PLAN_CYCLE_PRICES.get(plan_code or "")
    if table and cycle in table:
        return table[cycle]
    if base_price is None:
        return None
    if cycle is BillingCycle.ANNUAL:
        return annual_fallback_price(base_price)
    return base_price


def infer_plan_code(amount: int, cycle: BillingCycle) -> Optional[str]:
    """
    Best guess at the plan a charge was for, when the webhook carries no
    plan code: the highest-priced plan whose cycle price does not exceed the
    amount.
    """
    best_code = None
    best_price = -1
    for code, prices in PLAN_CYCLE_PRICES.items():
        price = prices.get(cycle)
        if price is not None and best_price < price <= amount:
            best_code, best_price = code, price
    return best_code


def derive_cycle_from_dates(started_at: datetime, expires_at: datetime) -> BillingCycle:
    if expires_at - started_at >= timedelta(days=ANNUAL_SPAN_THRESHOLD_DAYS):
        return BillingCycle.ANNUAL
    return BillingCycle.MONTHLY


def parse_cycle(value: Optional[str]) -> Optional[BillingCycle]:
    """Accepts our enum values plus the gateway's period names."""
    if not value:
        return None
    normalized = value.strip().upper()
    if normalized in ("ANNUAL", "YEARLY", "YEAR"):
        return BillingCycle.ANNUAL
    if normalized in ("MONTHLY", "MONTH"):
        return BillingCycle.MONTHLY
    return None


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month arithmetic; Jan 31 + 1 month is Feb 28/29."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def add_billing_cycle(start: datetime, cycle: BillingCycle) -> datetime:
    return add_months(start, cycle.months)


def is_trial_plan(plan_code: Optional[str]) -> bool:
    return plan_code == settings.trial_plan_code
