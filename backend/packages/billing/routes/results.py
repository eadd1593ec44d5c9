"""Translate billing failure results into HTTP errors."""

from typing import TypeVar

from fastapi import HTTPException, status

from packages.billing.models.domain.enums import BillingErrorCode, ErrorCategory
from packages.billing.models.domain.results import BillingResult

T = TypeVar("T")

_STATUS_BY_CATEGORY = {
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.INSUFFICIENT_FUNDS: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCategory.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorCategory.UPSTREAM_FAILURE: status.HTTP_502_BAD_GATEWAY,
}

# Codes whose status differs from their category's
_STATUS_BY_CODE = {
    BillingErrorCode.LOCK_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap(result: BillingResult[T]) -> BillingResult[T]:
    """Return a successful result unchanged, raise HTTPException otherwise."""
    if result.success:
        return result
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(
            result.error, _STATUS_BY_CATEGORY[result.error_category]
        ),
        detail={"error": result.error.value, "message": result.message},
    )
