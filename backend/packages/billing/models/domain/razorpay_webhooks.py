"""
Domain models for Razorpay webhook payloads.

Every delivery is decoded into exactly one tagged variant before any handler
runs. Event names we do not handle decode to ``None``; a known event whose
payload is missing required parts raises ``InvalidWebhookPayloadError``.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from common.core.clock import from_unix
from common.core.exceptions import InvalidWebhookPayloadError
from packages.billing.models.domain.gateway import Notes


class RazorpayWebhookType(str, Enum):
    """Razorpay webhook event types we care about."""

    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_CHARGED = "subscription.charged"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_AUTHORIZED = "subscription.authorized"
    SUBSCRIPTION_UPDATED = "subscription.updated"


class RazorpayNotes(BaseModel):
    """Metadata we attach to orders and subscriptions at checkout."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    plan_code: Optional[str] = Field(default=None, alias="planCode")
    user_id: Optional[str] = Field(default=None, alias="userId")
    email: Optional[str] = None
    billing_cycle: Optional[str] = Field(default=None, alias="billingCycle")
    trial_days: Optional[str] = Field(default=None, alias="trialDays")
    upgrade_from_subscription_id: Optional[str] = Field(
        default=None, alias="upgradeFromSubscriptionId"
    )

    @classmethod
    def parse(cls, raw: Any) -> "RazorpayNotes":
        if not isinstance(raw, dict):
            return cls()
        return cls.model_validate(
            {k: str(v) for k, v in raw.items() if v is not None and v != ""}
        )

    @property
    def customer_id(self) -> Optional[int]:
        if self.user_id and self.user_id.strip().isdigit():
            return int(self.user_id)
        return None


class RazorpayPaymentEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int
    currency: Optional[str] = None
    status: Optional[str] = None
    order_id: Optional[str] = None
    email: Optional[str] = None
    notes: Notes = {}
    error_code: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def parsed_notes(self) -> RazorpayNotes:
        return RazorpayNotes.parse(self.notes)


class RazorpaySubscriptionItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Optional[int] = None


class RazorpaySubscriptionEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    plan_id: Optional[str] = None
    customer_id: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None
    customer_email: Optional[str] = None
    start_at: Optional[int] = None
    current_start: Optional[int] = None
    current_end: Optional[int] = None
    charge_at: Optional[int] = None
    trial_end: Optional[int] = None
    quantity: Optional[int] = None
    item: Optional[RazorpaySubscriptionItem] = None
    notes: Notes = {}

    @property
    def parsed_notes(self) -> RazorpayNotes:
        return RazorpayNotes.parse(self.notes)

    @property
    def contact_email(self) -> Optional[str]:
        return self.parsed_notes.email or self.email or self.customer_email

    @property
    def current_start_at(self) -> Optional[datetime]:
        return from_unix(self.current_start or self.start_at)

    @property
    def current_end_at(self) -> Optional[datetime]:
        return from_unix(self.current_end)

    @property
    def trial_end_at(self) -> Optional[datetime]:
        return from_unix(self.trial_end)


class _PaymentWrapper(BaseModel):
    entity: RazorpayPaymentEntity


class _SubscriptionWrapper(BaseModel):
    entity: RazorpaySubscriptionEntity


class _PaymentPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment: _PaymentWrapper


class _SubscriptionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subscription: _SubscriptionWrapper
    payment: Optional[_PaymentWrapper] = None


class _BaseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    account_id: Optional[str] = None
    created_at: Optional[int] = None

    @property
    def event_type(self) -> RazorpayWebhookType:
        return RazorpayWebhookType(self.event)


class _PaymentEvent(_BaseEvent):
    payload: _PaymentPayload

    @property
    def payment(self) -> RazorpayPaymentEntity:
        return self.payload.payment.entity


class _SubscriptionEvent(_BaseEvent):
    payload: _SubscriptionPayload

    @property
    def subscription(self) -> RazorpaySubscriptionEntity:
        return self.payload.subscription.entity

    @property
    def payment(self) -> Optional[RazorpayPaymentEntity]:
        return self.payload.payment.entity if self.payload.payment else None


class PaymentCapturedEvent(_PaymentEvent):
    """One-time payment captured."""

    event: Literal["payment.captured"]


class PaymentFailedEvent(_PaymentEvent):
    event: Literal["payment.failed"]


class SubscriptionChargedEvent(_SubscriptionEvent):
    """First activation or a renewal charge of a recurring subscription."""

    event: Literal["subscription.activated", "subscription.charged"]


class SubscriptionCancelledEvent(_SubscriptionEvent):
    event: Literal["subscription.cancelled"]


class SubscriptionAuthorizedEvent(_SubscriptionEvent):
    """Mandate authorized; no charge yet."""

    event: Literal["subscription.authorized", "subscription.updated"]


RazorpayEvent = Annotated[
    Union[
        PaymentCapturedEvent,
        PaymentFailedEvent,
        SubscriptionChargedEvent,
        SubscriptionCancelledEvent,
        SubscriptionAuthorizedEvent,
    ],
    Field(discriminator="event"),
]

_event_adapter = TypeAdapter(RazorpayEvent)

KNOWN_EVENT_TYPES = frozenset(t.value for t in RazorpayWebhookType)


def decode_event(raw: Any) -> Optional[RazorpayEvent]:
    """
    Decode a raw webhook body into a tagged variant.

    Returns None for events we do not handle.

    Raises:
        InvalidWebhookPayloadError: for a known event with a malformed payload
    """
    if not isinstance(raw, dict):
        raise InvalidWebhookPayloadError("Webhook body must be a JSON object")

    event_name = raw.get("event")
    if event_name not in KNOWN_EVENT_TYPES:
        return None

    try:
        return _event_adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidWebhookPayloadError(
            f"Malformed {event_name} payload: {e.error_count()} validation error(s)"
        ) from e
