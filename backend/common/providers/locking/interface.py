import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional


class DistributedLockInterface(ABC):
    """Interface for distributed lock providers."""

    @abstractmethod
    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        """
        Try once to acquire a lock for a resource.

        Args:
            resource_key: The resource to lock (e.g., "billing:customer:42")
            timeout_seconds: Lock expiration time in seconds

        Returns:
            Lock token if acquired, None otherwise
        """
        pass

    @abstractmethod
    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        """
        Release a lock. Only the holder of lock_token may release it.

        Returns:
            True if released, False if token doesn't match or lock expired
        """
        pass

    async def acquire_lock_with_retry(
        self,
        resource_key: str,
        lock_ttl_seconds: int = 30,
        acquire_timeout_seconds: float = 5.0,
        retry_interval_ms: int = 50,
    ) -> Optional[str]:
        """
        Acquire a lock, retrying until acquire_timeout_seconds elapses.

        Returns:
            Lock token if acquired, None if timeout exceeded
        """
        end_time = time.monotonic() + acquire_timeout_seconds
        while time.monotonic() < end_time:
            token = await self.acquire_lock(resource_key, lock_ttl_seconds)
            if token:
                return token
            await asyncio.sleep(retry_interval_ms / 1000)
        return None

    async def close(self) -> None:
        """Release client resources. Default is a no-op."""
        return None
