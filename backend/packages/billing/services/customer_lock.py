"""
Per-customer activation lock.

Every path that may create or activate a subscription row (activation and
renewal webhooks, one-time captures, client fallback) holds this lock, so
the "at most one ACTIVE row per customer" check and the write that follows
cannot interleave across processes.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from common.providers.locking.interface import DistributedLockInterface

logger = get_logger(__name__)


def customer_lock_key(customer_id: int) -> str:
    return f"billing:customer:{customer_id}"


@asynccontextmanager
async def customer_lock(
    lock_provider: DistributedLockInterface, customer_id: int
) -> AsyncIterator[bool]:
    """
    Hold the customer's activation lock for the duration of the block.

    Yields False when the lock could not be acquired in time; callers then
    return LOCK_UNAVAILABLE so the gateway redelivers later.
    """
    lock_key = customer_lock_key(customer_id)
    lock_token = await lock_provider.acquire_lock_with_retry(
        lock_key,
        lock_ttl_seconds=settings.activation_lock_ttl_seconds,
        acquire_timeout_seconds=settings.activation_lock_acquire_timeout_seconds,
    )
    if not lock_token:
        logger.warning(
            "Could not acquire customer activation lock",
            extra={"customer_id": customer_id},
        )
        yield False
        return

    try:
        yield True
    finally:
        await lock_provider.release_lock(lock_key, lock_token)
