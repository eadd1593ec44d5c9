"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    SubscriptionStatus,
    BillingCycle,
    CreditType,
    LedgerDirection,
    LedgerSource,
    DeductFrom,
    BalanceKey,
    PaymentProvider,
    BillingErrorCode,
    ErrorCategory,
)
from packages.billing.models.domain.results import BillingResult
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.plans import Plan

__all__ = [
    # Enums
    "SubscriptionStatus",
    "BillingCycle",
    "CreditType",
    "LedgerDirection",
    "LedgerSource",
    "DeductFrom",
    "BalanceKey",
    "PaymentProvider",
    "BillingErrorCode",
    "ErrorCategory",
    # Results
    "BillingResult",
    # Subscription
    "Subscription",
    "SubscriptionCreateModel",
    "SubscriptionUpdateModel",
    # Plans
    "Plan",
]
