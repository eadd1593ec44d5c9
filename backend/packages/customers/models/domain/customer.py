from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, EmailStr, field_validator

from common.core.clock import ensure_utc


class CustomerStatus(str, Enum):
    """Verification state of a customer account."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"


class AccountTier(str, Enum):
    """VISITOR until the first paid or trial subscription, CUSTOMER after."""

    VISITOR = "VISITOR"
    CUSTOMER = "CUSTOMER"


class Customer(BaseModel):
    id: int
    email: EmailStr
    full_name: Optional[str] = None
    contact: Optional[str] = None
    status: CustomerStatus = CustomerStatus.PENDING
    account_tier: AccountTier = AccountTier.VISITOR
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_verified(self) -> bool:
        return self.status == CustomerStatus.VERIFIED


class CustomerUpdateModel(BaseModel):
    """Model for updating a customer."""

    full_name: Optional[str] = None
    contact: Optional[str] = None
    status: Optional[CustomerStatus] = None
    account_tier: Optional[AccountTier] = None

    class Config:
        use_enum_values = True
