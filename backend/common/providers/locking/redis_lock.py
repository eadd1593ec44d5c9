import uuid
from typing import Optional
import redis.asyncio as redis

from common.core.config import settings
from .interface import DistributedLockInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

# Atomic check-and-delete so a holder whose lock expired cannot release
# somebody else's lock.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock(DistributedLockInterface):
    """Redis-based distributed lock (SET NX EX + token-checked release)."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client
        self._lock_prefix = "lock:"

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(
                settings.redis_connection_url, decode_responses=True
            )
            logger.info("Redis lock client created")
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis lock client closed")

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        lock_key = f"{self._lock_prefix}{resource_key}"
        lock_token = str(uuid.uuid4())

        try:
            acquired = await self._get_client().set(
                lock_key,
                lock_token,
                nx=True,
                ex=timeout_seconds,
            )
        except redis.RedisError as e:
            logger.error(f"Error acquiring lock for {resource_key}: {e}")
            return None

        if acquired:
            logger.debug(f"Acquired lock for {resource_key}")
            return lock_token
        logger.debug(f"Lock for {resource_key} is held elsewhere")
        return None

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        lock_key = f"{self._lock_prefix}{resource_key}"

        try:
            result = await self._get_client().eval(
                _RELEASE_SCRIPT, 1, lock_key, lock_token
            )
        except redis.RedisError as e:
            logger.error(f"Error releasing lock for {resource_key}: {e}")
            return False

        if result:
            logger.debug(f"Released lock for {resource_key}")
            return True
        logger.warning(
            f"Cannot release lock for {resource_key} - token mismatch or lock expired"
        )
        return False
