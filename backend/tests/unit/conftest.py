import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from packages.billing.models.domain.gateway import (
    GatewayCustomer,
    GatewayOrder,
    GatewayPayment,
    GatewayPlan,
    GatewaySubscription,
)


@pytest.fixture
def mock_lock_provider():
    """Create a mock lock provider instance for testing."""
    lock = AsyncMock()
    lock.acquire_lock = AsyncMock(return_value="test-lock-token")
    lock.acquire_lock_with_retry = AsyncMock(return_value="test-lock-token")
    lock.release_lock = AsyncMock(return_value=True)
    lock.close = AsyncMock(return_value=None)
    return lock


@pytest.fixture(autouse=True)
def mock_get_lock_provider(mock_lock_provider):
    """Automatically mock get_lock_provider for all unit tests."""
    with patch(
        "packages.billing.webhooks.razorpay_webhook.get_lock_provider",
        return_value=mock_lock_provider,
    ), patch(
        "packages.billing.services.subscription_service.get_lock_provider",
        return_value=mock_lock_provider,
    ):
        yield


@pytest.fixture
def mock_payment_provider():
    """Payment gateway double with canned Razorpay-shaped responses."""
    provider = AsyncMock()
    provider.create_order = AsyncMock(
        return_value=GatewayOrder(
            id="order_test_001", amount=75900, currency="INR", receipt="rcpt"
        )
    )
    provider.create_customer = AsyncMock(
        return_value=GatewayCustomer(id="cust_test_001", email="ravi@example.com")
    )
    provider.create_subscription_plan = AsyncMock(
        return_value=GatewayPlan(id="plan_test_001", period="monthly")
    )
    provider.create_subscription = AsyncMock(
        return_value=GatewaySubscription(
            id="sub_test_new",
            status="created",
            short_url="https://rzp.io/i/test",
        )
    )
    provider.cancel_subscription = AsyncMock(
        return_value=GatewaySubscription(id="sub_existing_001", status="cancelled")
    )
    provider.fetch_subscription = AsyncMock(
        return_value=GatewaySubscription(id="sub_existing_001", status="active")
    )
    provider.fetch_payment = AsyncMock(
        return_value=GatewayPayment(
            id="pay_test_001", amount=75900, currency="INR", status="captured"
        )
    )
    provider.health_check = AsyncMock(return_value=True)
    provider.verify_webhook_signature = MagicMock(return_value=True)
    provider.verify_payment_signature = MagicMock(return_value=True)
    return provider


@pytest.fixture(autouse=True)
def mock_get_payment_provider(mock_payment_provider):
    """No unit test talks to the real gateway."""
    with patch(
        "packages.billing.services.subscription_service.get_payment_provider",
        return_value=mock_payment_provider,
    ), patch(
        "packages.billing.services.proration_service.get_payment_provider",
        return_value=mock_payment_provider,
    ), patch(
        "packages.billing.services.checkout_service.get_payment_provider",
        return_value=mock_payment_provider,
    ), patch(
        "packages.billing.webhooks.razorpay_webhook.get_payment_provider",
        return_value=mock_payment_provider,
    ):
        yield


@pytest.fixture
def mock_notifier():
    sender = AsyncMock()
    sender.send_payment_success = AsyncMock(return_value=None)
    sender.send_payment_failure = AsyncMock(return_value=None)
    sender.send_subscription_cancellation = AsyncMock(return_value=None)
    return sender


@pytest.fixture(autouse=True)
def mock_get_notification_sender(mock_notifier):
    with patch(
        "packages.billing.webhooks.razorpay_webhook.get_notification_sender",
        return_value=mock_notifier,
    ):
        yield


@pytest.fixture
def mock_span():
    """Create a mock span instance for testing telemetry."""
    span = MagicMock()
    span.__enter__ = MagicMock(return_value=span)
    span.__exit__ = MagicMock(return_value=None)
    span.__aenter__ = AsyncMock(return_value=span)
    span.__aexit__ = AsyncMock(return_value=None)
    return span


@pytest.fixture
def mock_start_span(mock_span):
    """Patch the global tracer so spans can be asserted on."""
    with patch(
        "common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span",
        return_value=mock_span,
    ) as start_span:
        yield start_span
