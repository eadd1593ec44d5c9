"""Fire-and-log execution for side effects that must never fail a caller."""

from typing import Any, Awaitable, Optional, TypeVar

from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def best_effort(
    awaitable: Awaitable[T], description: str, **extra: Any
) -> Optional[T]:
    """
    Await a side effect, logging instead of raising on failure.

    Used for provider-side cancellations and customer notifications, where
    local state is already authoritative and the call is not retried.

    Returns:
        The awaited result, or None if it raised
    """
    try:
        return await awaitable
    except Exception as e:
        logger.warning(
            f"Best-effort {description} failed: {e}",
            extra={**extra, "error": str(e)},
        )
        return None
