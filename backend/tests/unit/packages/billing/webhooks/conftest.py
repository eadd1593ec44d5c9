import time

import pytest


@pytest.fixture
def payment_event():
    """Build a raw Razorpay payment.* webhook body."""

    def _build(
        event: str = "payment.captured",
        payment_id: str = "pay_001",
        amount: int = 75900,
        email: str = "ravi@example.com",
        notes=None,
        **entity_fields,
    ) -> dict:
        entity = {
            "id": payment_id,
            "entity": "payment",
            "amount": amount,
            "currency": "INR",
            "status": "captured" if event == "payment.captured" else "failed",
            "order_id": "order_001",
            "email": email,
            "notes": notes if notes is not None else {},
        }
        entity.update(entity_fields)
        return {
            "entity": "event",
            "account_id": "acc_test",
            "event": event,
            "contains": ["payment"],
            "payload": {"payment": {"entity": entity}},
            "created_at": int(time.time()),
        }

    return _build


@pytest.fixture
def subscription_event():
    """Build a raw Razorpay subscription.* webhook body."""

    def _build(
        event: str = "subscription.activated",
        subscription_id: str = "sub_new_001",
        notes=None,
        status: str = "active",
        payment_amount=None,
        payment_id: str = "pay_sub_001",
        created_at: int = None,
        **entity_fields,
    ) -> dict:
        now = int(time.time())
        entity = {
            "id": subscription_id,
            "entity": "subscription",
            "plan_id": "plan_test_001",
            "customer_id": "cust_test_001",
            "status": status,
            "current_start": now,
            "current_end": now + 30 * 86400,
            "quantity": 1,
            "notes": notes if notes is not None else {},
        }
        entity.update(entity_fields)
        payload = {"subscription": {"entity": entity}}
        if payment_amount is not None:
            payload["payment"] = {
                "entity": {
                    "id": payment_id,
                    "entity": "payment",
                    "amount": payment_amount,
                    "currency": "INR",
                    "status": "captured",
                    "email": "ravi@example.com",
                    "notes": [],
                }
            }
        return {
            "entity": "event",
            "account_id": "acc_test",
            "event": event,
            "contains": list(payload.keys()),
            "payload": payload,
            "created_at": created_at if created_at is not None else now,
        }

    return _build
