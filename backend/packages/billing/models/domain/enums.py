"""
Billing enums - strongly typed enumerations for subscription and ledger states.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    Subscription status lifecycle.

    Flow: ACTIVE -> CANCELED (terminal). Rows are never deleted.
    """

    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"

    def has_access(self) -> bool:
        return self is SubscriptionStatus.ACTIVE


class BillingCycle(str, Enum):
    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"

    @property
    def days(self) -> int:
        """Nominal cycle length used for per-day proration."""
        return 365 if self is BillingCycle.ANNUAL else 30

    @property
    def months(self) -> int:
        return 12 if self is BillingCycle.ANNUAL else 1


class CreditType(str, Enum):
    """The two balance pools. Free credits are spent before prepaid ones."""

    PREPAID = "prepaid"
    FREE = "free"


class LedgerDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerSource(str, Enum):
    ADMIN = "admin"
    SYSTEM = "system"
    SUBSCRIPTION = "subscription"


class DeductFrom(str, Enum):
    PREPAID = "prepaid"
    FREE = "free"
    AUTO = "auto"


class BalanceKey(str, Enum):
    """Keys of the per-customer balance projection."""

    CREDITS_PREPAID = "CREDITS_PREPAID"
    CREDITS_FREE = "CREDITS_FREE"
    USAGE_USED = "USAGE_USED"
    USAGE_PREPAID_USED = "USAGE_PREPAID_USED"


class PaymentProvider(str, Enum):
    """Supported payment providers."""

    RAZORPAY = "RAZORPAY"
    MANUAL = "MANUAL"  # Admin-created subscriptions


class ErrorCategory(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_REQUEST = "INVALID_REQUEST"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_STATE = "INVALID_STATE"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"


class BillingErrorCode(str, Enum):
    """Business failure codes carried by BillingResult."""

    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_PREPAID_CREDITS = "INSUFFICIENT_PREPAID_CREDITS"
    INSUFFICIENT_FREE_CREDITS = "INSUFFICIENT_FREE_CREDITS"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"
    UNDERPAID_SUBSCRIPTION = "UNDERPAID_SUBSCRIPTION"
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    UNRECOGNIZED_EVENT = "UNRECOGNIZED_EVENT"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    LOCK_UNAVAILABLE = "LOCK_UNAVAILABLE"

    @property
    def category(self) -> ErrorCategory:
        return _ERROR_CATEGORIES[self]


_ERROR_CATEGORIES = {
    BillingErrorCode.CUSTOMER_NOT_FOUND: ErrorCategory.NOT_FOUND,
    BillingErrorCode.PLAN_NOT_FOUND: ErrorCategory.NOT_FOUND,
    BillingErrorCode.SUBSCRIPTION_NOT_FOUND: ErrorCategory.NOT_FOUND,
    BillingErrorCode.INVALID_AMOUNT: ErrorCategory.INVALID_REQUEST,
    BillingErrorCode.UNRECOGNIZED_EVENT: ErrorCategory.INVALID_REQUEST,
    BillingErrorCode.INSUFFICIENT_PREPAID_CREDITS: ErrorCategory.INSUFFICIENT_FUNDS,
    BillingErrorCode.INSUFFICIENT_FREE_CREDITS: ErrorCategory.INSUFFICIENT_FUNDS,
    BillingErrorCode.USAGE_LIMIT_REACHED: ErrorCategory.INSUFFICIENT_FUNDS,
    BillingErrorCode.SUBSCRIPTION_INACTIVE: ErrorCategory.INVALID_STATE,
    BillingErrorCode.UNDERPAID_SUBSCRIPTION: ErrorCategory.INVALID_STATE,
    BillingErrorCode.ALREADY_CLAIMED: ErrorCategory.INVALID_STATE,
    BillingErrorCode.UPSTREAM_FAILURE: ErrorCategory.UPSTREAM_FAILURE,
    BillingErrorCode.LOCK_UNAVAILABLE: ErrorCategory.UPSTREAM_FAILURE,
}
