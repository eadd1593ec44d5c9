"""
Typed views of the payment gateway's REST objects.

Only the fields billing reads are modelled; everything else is ignored.
"""

from typing import Annotated, Any, Optional
from pydantic import BaseModel, BeforeValidator, ConfigDict


def _notes_dict(v: Any) -> dict:
    # The gateway serializes empty notes as [] instead of {}
    if isinstance(v, dict):
        return v
    return {}


Notes = Annotated[dict, BeforeValidator(_notes_dict)]


class GatewayObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class GatewayOrder(GatewayObject):
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None
    notes: Notes = {}


class GatewayCustomer(GatewayObject):
    name: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None


class GatewayPlan(GatewayObject):
    period: str
    interval: int = 1


class GatewaySubscription(GatewayObject):
    plan_id: Optional[str] = None
    customer_id: Optional[str] = None
    status: Optional[str] = None
    short_url: Optional[str] = None
    start_at: Optional[int] = None
    current_start: Optional[int] = None
    current_end: Optional[int] = None
    notes: Notes = {}


class GatewayPayment(GatewayObject):
    amount: int
    currency: Optional[str] = None
    status: Optional[str] = None
    order_id: Optional[str] = None
    email: Optional[str] = None
    notes: Notes = {}

