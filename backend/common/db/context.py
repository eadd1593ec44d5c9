"""
Task-local session state for lazy database access.

A billing operation that has to change several tables atomically (a
consumption writes balances, a ledger debit and a usage record) opens one
transaction(); every repository call made inside it finds that session here
instead of acquiring its own. Values live in ContextVars, so concurrent
webhook deliveries and API requests never see each other's sessions.

Read and write sessions are tracked separately so a read replica can be
wired into AsyncSessionLocalReadonly without touching callers.
"""

from contextvars import ContextVar
from functools import wraps
from typing import Optional, Callable, TypeVar, ParamSpec

from sqlalchemy.ext.asyncio import AsyncSession

_write_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_write_session", default=None
)
_read_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_read_session", default=None
)
_force_readonly: ContextVar[bool] = ContextVar("db_force_readonly", default=False)


def _slot(readonly: bool) -> ContextVar[Optional[AsyncSession]]:
    return _read_session if readonly else _write_session


def is_readonly_forced() -> bool:
    return _force_readonly.get()


def effective_readonly(readonly: bool = False) -> bool:
    """A @readonly caller upgrades every request in its call chain to readonly."""
    return readonly or is_readonly_forced()


def get_current_session(readonly: bool = False) -> Optional[AsyncSession]:
    """The session of the enclosing transaction(), or None outside one."""
    return _slot(effective_readonly(readonly)).get()


def set_current_session(session: AsyncSession, readonly: bool = False) -> object:
    """Bind session for this task; pass the returned token to reset_current_session."""
    return _slot(readonly).set(session)


def reset_current_session(token: object, readonly: bool = False) -> None:
    _slot(readonly).reset(token)


def in_transaction(readonly: bool = False) -> bool:
    return get_current_session(readonly=readonly) is not None


P = ParamSpec("P")
T = TypeVar("T")


def readonly(func: Callable[P, T]) -> Callable[P, T]:
    """
    Route every DB operation in this call chain to the read session.

    Usage:
        @readonly
        async def get_overview(self, customer_id: int):
            snapshot = await self.balance_repo.get_snapshot(customer_id)
            ...
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        token = _force_readonly.set(True)
        try:
            return await func(*args, **kwargs)
        finally:
            _force_readonly.reset(token)

    return wrapper
