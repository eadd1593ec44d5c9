"""
Structured outcome of billing operations.

Business failures (insufficient credits, unknown customer, replayed event)
are values, not exceptions. Exceptions are reserved for storage errors and
malformed input.
"""

from typing import Generic, Optional, TypeVar
from pydantic import BaseModel

from packages.billing.models.domain.enums import BillingErrorCode, ErrorCategory

T = TypeVar("T")


class BillingResult(BaseModel, Generic[T]):
    success: bool
    error: Optional[BillingErrorCode] = None
    message: Optional[str] = None
    already_processed: bool = False
    data: Optional[T] = None

    @classmethod
    def ok(
        cls,
        data: Optional[T] = None,
        message: Optional[str] = None,
        already_processed: bool = False,
    ) -> "BillingResult[T]":
        return cls(
            success=True,
            data=data,
            message=message,
            already_processed=already_processed,
        )

    @classmethod
    def fail(
        cls, error: BillingErrorCode, message: Optional[str] = None
    ) -> "BillingResult[T]":
        return cls(success=False, error=error, message=message or error.value)

    @property
    def error_category(self) -> Optional[ErrorCategory]:
        return self.error.category if self.error else None
