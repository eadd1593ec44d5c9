"""Process-wide lock provider; webhook activations serialize per customer on it."""

from typing import Optional
import redis.asyncio as redis

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger

from .interface import DistributedLockInterface
from .redis_lock import RedisLock

logger = get_logger(__name__)

_lock_provider: Optional[DistributedLockInterface] = None


def get_lock_provider() -> DistributedLockInterface:
    global _lock_provider

    if _lock_provider is None:
        client = redis.Redis.from_url(
            settings.redis_connection_url, decode_responses=True
        )
        _lock_provider = RedisLock(client=client)
        logger.info(
            "Initialized Redis lock provider",
            extra={"redis_host": settings.redis_host, "redis_db": settings.redis_db},
        )

    return _lock_provider


async def close_lock_provider() -> None:
    """Close the shared client on shutdown; the next get_lock_provider() reconnects."""
    global _lock_provider

    if _lock_provider is not None:
        await _lock_provider.close()
        _lock_provider = None
