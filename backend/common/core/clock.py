"""Timezone helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so every datetime crossing into a domain model goes through
``ensure_utc``.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_unix(seconds: Optional[int]) -> Optional[datetime]:
    """Provider timestamps are unix seconds."""
    if seconds is None:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
