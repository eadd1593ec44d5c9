"""Billing services."""

from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.credit_ledger_service import CreditLedgerService
from packages.billing.services.plans_service import PlansService
from packages.billing.services.proration_service import ProrationService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.trial_service import TrialService

__all__ = [
    "CheckoutService",
    "CreditLedgerService",
    "PlansService",
    "ProrationService",
    "SubscriptionService",
    "TrialService",
]
