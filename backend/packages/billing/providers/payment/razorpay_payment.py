"""
Razorpay implementation of payment provider.
"""

from datetime import datetime
from typing import Any, Optional, Union

import httpx
import razorpay
from razorpay.errors import SignatureVerificationError

from common.core.config import settings
from common.core.exceptions import UpstreamError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import BillingCycle
from packages.billing.models.domain.gateway import (
    GatewayCustomer,
    GatewayOrder,
    GatewayPayment,
    GatewayPlan,
    GatewaySubscription,
)
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)

_PERIODS = {
    BillingCycle.MONTHLY: "monthly",
    BillingCycle.ANNUAL: "yearly",
}

# Page size used when looking a customer up by email
CUSTOMER_SEARCH_PAGE_SIZE = 100


class RazorpayPaymentProvider(PaymentProviderInterface):
    """Razorpay REST API over httpx, basic auth with the key pair."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.razorpay_base_url.rstrip("/")
        self.key_id = settings.razorpay_key_id
        self._key_secret = settings.razorpay_key_secret
        self._webhook_secret = settings.razorpay_webhook_secret
        self._timeout = settings.razorpay_timeout_seconds
        self._transport = transport
        self._sdk = razorpay.Client(auth=(self.key_id, self._key_secret))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.key_id, self._key_secret),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.error(
                f"Razorpay {method} {path} failed: {e}",
                extra={"path": path, "error": str(e)},
            )
            raise UpstreamError(f"Razorpay request failed: {e}") from e

        if response.is_error:
            description = _error_description(response)
            logger.error(
                f"Razorpay {method} {path} returned {response.status_code}: {description}",
                extra={"path": path, "status_code": response.status_code},
            )
            raise UpstreamError(description, status_code=response.status_code)

        return response.json()

    @trace_span
    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        data = await self._request(
            "POST",
            "/orders",
            json={
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        order = GatewayOrder.model_validate(data)
        logger.info(
            "Created Razorpay order",
            extra={"order_id": order.id, "amount": amount, "receipt": receipt},
        )
        return order

    @trace_span
    async def create_customer(
        self,
        name: str,
        email: str,
        contact: Optional[str] = None,
    ) -> GatewayCustomer:
        existing = await self._find_customer_by_email(email)
        if existing:
            logger.info(
                "Reusing existing Razorpay customer",
                extra={"provider_customer_id": existing.id},
            )
            return existing

        body = {"name": name, "email": email}
        if contact:
            body["contact"] = contact

        try:
            data = await self._request("POST", "/customers", json=body)
        except UpstreamError as e:
            # Lost a race with another checkout for the same email
            if e.status_code == 400 and "already exists" in str(e).lower():
                existing = await self._find_customer_by_email(email)
                if existing:
                    return existing
            raise

        customer = GatewayCustomer.model_validate(data)
        logger.info(
            "Created Razorpay customer",
            extra={"provider_customer_id": customer.id},
        )
        return customer

    async def _find_customer_by_email(self, email: str) -> Optional[GatewayCustomer]:
        data = await self._request(
            "GET", "/customers", params={"count": CUSTOMER_SEARCH_PAGE_SIZE}
        )
        wanted = email.strip().lower()
        for item in data.get("items", []):
            if (item.get("email") or "").strip().lower() == wanted:
                return GatewayCustomer.model_validate(item)
        return None

    @trace_span
    async def create_subscription_plan(
        self,
        plan_code: str,
        name: str,
        amount: int,
        currency: str,
        cycle: BillingCycle,
    ) -> GatewayPlan:
        data = await self._request(
            "POST",
            "/plans",
            json={
                "period": _PERIODS[cycle],
                "interval": 1,
                "item": {
                    "name": name,
                    "amount": amount,
                    "currency": currency,
                    "description": f"{name} ({cycle.value.lower()})",
                },
                "notes": {"planCode": plan_code, "billingCycle": cycle.value},
            },
        )
        return GatewayPlan.model_validate(data)

    @trace_span
    async def create_subscription(
        self,
        plan_id: str,
        customer_id: str,
        notes: Optional[dict] = None,
        start_at: Optional[datetime] = None,
    ) -> GatewaySubscription:
        body = {
            "plan_id": plan_id,
            "customer_id": customer_id,
            "total_count": settings.razorpay_subscription_total_count,
            "quantity": 1,
            "customer_notify": 1,
            "notes": notes or {},
        }
        if start_at is not None:
            body["start_at"] = int(start_at.timestamp())

        data = await self._request("POST", "/subscriptions", json=body)
        subscription = GatewaySubscription.model_validate(data)
        logger.info(
            "Created Razorpay subscription",
            extra={
                "provider_subscription_id": subscription.id,
                "provider_plan_id": plan_id,
                "deferred_start": start_at is not None,
            },
        )
        return subscription

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, at_cycle_end: bool = False
    ) -> GatewaySubscription:
        data = await self._request(
            "POST",
            f"/subscriptions/{subscription_id}/cancel",
            json={"cancel_at_cycle_end": 1 if at_cycle_end else 0},
        )
        logger.info(
            "Cancelled Razorpay subscription",
            extra={
                "provider_subscription_id": subscription_id,
                "at_cycle_end": at_cycle_end,
            },
        )
        return GatewaySubscription.model_validate(data)

    @trace_span
    async def fetch_subscription(self, subscription_id: str) -> GatewaySubscription:
        data = await self._request("GET", f"/subscriptions/{subscription_id}")
        return GatewaySubscription.model_validate(data)

    @trace_span
    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/payments/{payment_id}")
        return GatewayPayment.model_validate(data)

    def verify_webhook_signature(
        self, body: Union[str, bytes], signature: Optional[str]
    ) -> bool:
        if not self._webhook_secret or not signature:
            return False
        try:
            if isinstance(body, bytes):
                body = body.decode("utf-8")
            return self._sdk.utility.verify_webhook_signature(
                body, signature.strip(), self._webhook_secret
            )
        except (SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning(f"Razorpay webhook signature rejected: {str(e)}")
            return False

    def verify_payment_signature(
        self, order_id: str, payment_id: str, signature: Optional[str]
    ) -> bool:
        if not self._key_secret or not signature:
            return False
        try:
            return self._sdk.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature.strip(),
                }
            )
        except SignatureVerificationError as e:
            logger.warning(
                f"Razorpay payment signature rejected: {str(e)}",
                extra={"order_id": order_id, "payment_id": payment_id},
            )
            return False

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/plans", params={"count": 1})
            return True
        except UpstreamError:
            return False


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("description"):
        return error["description"]
    return response.text
