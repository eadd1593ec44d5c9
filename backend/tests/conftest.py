# Shared pytest configuration and fixtures for all test types
import pytest_asyncio
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from api.main import app

from common.db.session import get_db
from common.db.base import Base
from packages.customers.models.database.customer import CustomerEntity
from packages.customers.models.domain.customer import (
    AccountTier,
    Customer,
    CustomerStatus,
)
from packages.billing.models.database import (
    CustomerBalanceOverrideEntity,
    EligibleEmailEntity,
    LedgerEntryEntity,
    PlanEntity,
    SubscriptionEntity,
    UsageRecordEntity,
)
from packages.billing.models.domain.enums import (
    PaymentProvider,
    SubscriptionStatus,
)
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.subscription import Subscription
from packages.billing.services.plans_service import PlansService

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_sqlite_savepoints(engine) -> None:
    """
    Let pysqlite emit BEGIN itself so SAVEPOINTs work.

    Without this the driver manages transactions on its own and
    session.begin_nested() inside the rolled-back outer transaction breaks.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    _enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so nested transaction()
    calls create savepoints instead of real nested transactions.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", test_session_factory
    )


@pytest_asyncio.fixture(scope="function")
async def client(test_db: AsyncSession):
    """Create a test client."""

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


async def _create_customer(
    session: AsyncSession,
    email: str,
    status: CustomerStatus = CustomerStatus.VERIFIED,
    full_name: str = "Test Customer",
) -> Customer:
    entity = CustomerEntity(
        email=email,
        full_name=full_name,
        status=status.value,
        account_tier=AccountTier.VISITOR.value,
    )
    session.add(entity)
    await session.commit()
    await session.refresh(entity)
    return Customer.model_validate(entity)


@pytest_asyncio.fixture(scope="function")
async def sample_customer(test_db: AsyncSession) -> Customer:
    """A verified customer with no subscription yet."""
    return await _create_customer(test_db, "ravi@example.com", full_name="Ravi Kumar")


@pytest_asyncio.fixture(scope="function")
async def second_customer(test_db: AsyncSession) -> Customer:
    return await _create_customer(test_db, "meera@example.com", full_name="Meera Shah")


@pytest_asyncio.fixture(scope="function")
async def pending_customer(test_db: AsyncSession) -> Customer:
    """A customer whose email is not verified yet."""
    return await _create_customer(
        test_db, "pending@example.com", status=CustomerStatus.PENDING
    )


@pytest_asyncio.fixture(scope="function")
async def sample_plans() -> dict[str, Plan]:
    """Default catalog (PRO and PRO_PRIME-X), keyed by plan code."""
    plans = await PlansService().seed_default_plans()
    return {plan.code: plan for plan in plans}


async def _create_subscription_row(
    session: AsyncSession,
    customer_id: int,
    plan_id: int,
    started_at: datetime,
    expires_at: datetime,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    provider_subscription_id: str = None,
    auto_renew: bool = True,
) -> Subscription:
    """Insert a subscription row directly, bypassing the service."""
    entity = SubscriptionEntity(
        customer_id=customer_id,
        plan_id=plan_id,
        status=status.value,
        started_at=started_at,
        expires_at=expires_at,
        auto_renew=auto_renew,
        payment_provider=PaymentProvider.RAZORPAY.value,
        provider_subscription_id=provider_subscription_id,
    )
    session.add(entity)
    await session.commit()
    await session.refresh(entity)
    return Subscription.model_validate(entity)


@pytest_asyncio.fixture(scope="function")
async def active_subscription(
    test_db: AsyncSession, sample_customer, sample_plans
) -> Subscription:
    """Monthly PRO_PRIME-X subscription that started ten days ago."""
    started_at = datetime.now(timezone.utc) - timedelta(days=10)
    return await _create_subscription_row(
        test_db,
        customer_id=sample_customer.id,
        plan_id=sample_plans["PRO_PRIME-X"].id,
        started_at=started_at,
        expires_at=started_at + timedelta(days=30),
        provider_subscription_id="sub_existing_001",
    )


@pytest_asyncio.fixture(scope="function")
async def make_subscription(test_db: AsyncSession):
    """Factory for subscription rows with explicit dates and status."""

    async def _make(**kwargs) -> Subscription:
        return await _create_subscription_row(test_db, **kwargs)

    return _make
