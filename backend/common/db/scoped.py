"""
Operation-scoped database sessions.

Connections are held only for the duration of a database operation, never
across payment gateway calls, Redis lock waits or notifications.

    # one statement: acquire, commit, release
    async with get_session() as session:
        ...

    # balance row lock + projection + ledger entry commit together
    async with transaction():
        await customer_repo.lock_for_update(customer_id)
        await balance_repo.set_values(customer_id, values)
        await ledger_repo.create(entry)

See also:
    - common/db/context.py: The @readonly decorator
    - common/db/session.py: Engine and request-scoped sessions (get_db)
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import get_logger
from common.db.session import AsyncSessionLocal, AsyncSessionLocalReadonly
from common.db.context import (
    effective_readonly,
    get_current_session,
    set_current_session,
    reset_current_session,
)

logger = get_logger(__name__)


@asynccontextmanager
async def _owned_session(
    readonly: bool, label: str
) -> AsyncGenerator[AsyncSession, None]:
    """Open a fresh session; commit on success unless readonly, roll back on error."""
    factory = AsyncSessionLocalReadonly if readonly else AsyncSessionLocal

    start = time.perf_counter()
    async with factory() as session:
        logger.debug(
            f"{label} session acquire: {(time.perf_counter() - start) * 1000:.2f}ms, "
            f"readonly={readonly}"
        )
        try:
            yield session
            if not readonly:
                await session.commit()
        except Exception as e:
            logger.error(f"{label} rollback due to: {e}")
            await session.rollback()
            raise


@asynccontextmanager
async def transaction(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Explicit transaction boundary.

    Every repository call inside shares one session. A transaction() opened
    inside another joins it; only the outermost block commits or rolls back.

    Raises:
        Exception: Re-raises any exception after rollback
    """
    readonly = effective_readonly(readonly)
    existing = get_current_session(readonly=readonly)
    if existing is not None:
        yield existing
        return

    async with _owned_session(readonly, "Transaction") as session:
        token = set_current_session(session, readonly=readonly)
        try:
            yield session
        finally:
            reset_current_session(token, readonly=readonly)


@asynccontextmanager
async def get_session(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Session for a single repository operation.

    Inside a transaction() this is the transaction's session and nothing is
    committed here. Outside one, a session is acquired, committed and
    released around the operation.
    """
    readonly = effective_readonly(readonly)
    existing = get_current_session(readonly=readonly)
    if existing is not None:
        yield existing
        return

    async with _owned_session(readonly, "Operation") as session:
        yield session
