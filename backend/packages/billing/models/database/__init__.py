"""Database models for billing."""

from packages.billing.models.database.plan import PlanEntity
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.database.ledger import LedgerEntryEntity, UsageRecordEntity
from packages.billing.models.database.balance import CustomerBalanceOverrideEntity
from packages.billing.models.database.eligible_email import EligibleEmailEntity

__all__ = [
    "PlanEntity",
    "SubscriptionEntity",
    "LedgerEntryEntity",
    "UsageRecordEntity",
    "CustomerBalanceOverrideEntity",
    "EligibleEmailEntity",
]
