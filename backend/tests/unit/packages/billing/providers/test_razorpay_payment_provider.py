import hashlib
import hmac
import json
import pytest
from datetime import datetime, timezone

import httpx

from common.core.config import settings
from common.core.exceptions import UpstreamError
from packages.billing.models.domain.enums import BillingCycle
from packages.billing.providers.payment.razorpay_payment import RazorpayPaymentProvider


@pytest.fixture
def gateway_settings(monkeypatch):
    monkeypatch.setattr(settings, "razorpay_key_id", "rzp_test_key")
    monkeypatch.setattr(settings, "razorpay_key_secret", "rzp_test_secret")
    monkeypatch.setattr(settings, "razorpay_webhook_secret", "whsec_test")
    monkeypatch.setattr(settings, "razorpay_base_url", "https://razorpay.test/v1")


def _provider(handler) -> RazorpayPaymentProvider:
    return RazorpayPaymentProvider(transport=httpx.MockTransport(handler))


def _sign(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class TestRequests:
    async def test_create_order_posts_amount_in_paise(self, gateway_settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "id": "order_1",
                    "amount": 75900,
                    "currency": "INR",
                    "receipt": "rcpt_1",
                    "notes": [],
                },
            )

        order = await _provider(handler).create_order(
            75900, "INR", "rcpt_1", notes={"planCode": "PRO"}
        )

        assert order.id == "order_1"
        assert order.notes == {}
        assert seen["method"] == "POST"
        assert seen["path"] == "/v1/orders"
        assert seen["auth"].startswith("Basic ")
        assert seen["body"] == {
            "amount": 75900,
            "currency": "INR",
            "receipt": "rcpt_1",
            "notes": {"planCode": "PRO"},
        }

    async def test_subscription_with_deferred_start(self, gateway_settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"id": "sub_1", "status": "created", "short_url": "u"}
            )

        start_at = datetime(2026, 5, 1, tzinfo=timezone.utc)
        subscription = await _provider(handler).create_subscription(
            "plan_1", "cust_1", notes={"trialDays": "7"}, start_at=start_at
        )

        assert subscription.id == "sub_1"
        assert seen["body"]["start_at"] == int(start_at.timestamp())
        assert seen["body"]["total_count"] == settings.razorpay_subscription_total_count
        assert seen["body"]["notes"] == {"trialDays": "7"}

    async def test_plan_period_for_annual_cycle(self, gateway_settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "plan_1", "period": "yearly"})

        plan = await _provider(handler).create_subscription_plan(
            "PRO", "Pro", 739900, "INR", BillingCycle.ANNUAL
        )

        assert plan.id == "plan_1"
        assert seen["body"]["period"] == "yearly"
        assert seen["body"]["item"]["amount"] == 739900

    async def test_existing_customer_is_reused(self, gateway_settings):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            return httpx.Response(
                200,
                json={"items": [{"id": "cust_9", "email": "Ravi@Example.com"}]},
            )

        customer = await _provider(handler).create_customer(
            "Ravi", "ravi@example.com"
        )

        assert customer.id == "cust_9"
        assert calls == [("GET", "/v1/customers")]


    @pytest.mark.parametrize("at_cycle_end,flag", [(False, 0), (True, 1)])
    async def test_cancel_subscription_timing(
        self, gateway_settings, at_cycle_end, flag
    ):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "sub_1", "status": "cancelled"})

        subscription = await _provider(handler).cancel_subscription(
            "sub_1", at_cycle_end=at_cycle_end
        )

        assert seen["path"] == "/v1/subscriptions/sub_1/cancel"
        assert seen["body"] == {"cancel_at_cycle_end": flag}
        assert subscription.status == "cancelled"

    async def test_cancel_defaults_to_immediate(self, gateway_settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "sub_1", "status": "cancelled"})

        await _provider(handler).cancel_subscription("sub_1")

        assert seen["body"] == {"cancel_at_cycle_end": 0}


class TestErrors:
    async def test_error_body_becomes_upstream_error(self, gateway_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={
                    "error": {
                        "code": "BAD_REQUEST_ERROR",
                        "description": "The amount must be atleast INR 1.00",
                    }
                },
            )

        with pytest.raises(UpstreamError) as exc_info:
            await _provider(handler).create_order(10, "INR", "rcpt")

        assert exc_info.value.status_code == 400
        assert "atleast INR 1.00" in str(exc_info.value)

    async def test_transport_error_becomes_upstream_error(self, gateway_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError):
            await _provider(handler).fetch_subscription("sub_1")

    async def test_health_check(self, gateway_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        assert await _provider(handler).health_check() is False


class TestSignatures:
    def test_webhook_signature(self, gateway_settings):
        body = b'{"event":"payment.captured"}'
        provider = RazorpayPaymentProvider()

        assert provider.verify_webhook_signature(
            body, _sign("whsec_test", body)
        )
        assert not provider.verify_webhook_signature(body, "deadbeef")

    def test_payment_signature(self, gateway_settings):
        provider = RazorpayPaymentProvider()
        signature = _sign("rzp_test_secret", "order_1|pay_1")

        assert provider.verify_payment_signature("order_1", "pay_1", signature)
        assert not provider.verify_payment_signature("order_1", "pay_2", signature)

    def test_tampered_body_is_rejected(self, gateway_settings):
        body = b'{"event":"payment.captured"}'
        signature = _sign("whsec_test", body)

        assert not RazorpayPaymentProvider().verify_webhook_signature(
            body + b" ", signature
        )

    def test_str_body_and_padded_header(self, gateway_settings):
        body = '{"event":"subscription.charged"}'
        signature = _sign("whsec_test", body)

        assert RazorpayPaymentProvider().verify_webhook_signature(
            body, f" {signature}\n"
        )

    def test_missing_signature_or_secret(self, gateway_settings, monkeypatch):
        body = b"{}"
        provider = RazorpayPaymentProvider()
        assert not provider.verify_webhook_signature(body, None)
        assert not provider.verify_webhook_signature(body, "")
        assert not provider.verify_payment_signature("order_1", "pay_1", None)

        monkeypatch.setattr(settings, "razorpay_webhook_secret", "")
        assert not RazorpayPaymentProvider().verify_webhook_signature(
            body, _sign("", body)
        )

    def test_undecodable_body_is_rejected(self, gateway_settings):
        body = b"\xff\xfe"
        assert not RazorpayPaymentProvider().verify_webhook_signature(
            body, _sign("whsec_test", body)
        )
