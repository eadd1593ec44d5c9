"""Billing repositories."""

from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.repositories.ledger_repository import (
    LedgerEntryRepository,
    UsageRecordRepository,
)
from packages.billing.repositories.balance_repository import BalanceRepository
from packages.billing.repositories.eligible_email_repository import (
    EligibleEmailRepository,
)

__all__ = [
    "PlanRepository",
    "SubscriptionRepository",
    "LedgerEntryRepository",
    "UsageRecordRepository",
    "BalanceRepository",
    "EligibleEmailRepository",
]
