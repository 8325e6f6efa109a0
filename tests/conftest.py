from __future__ import annotations

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from revealcards.core.config import Settings
from revealcards.db.models import Base
from tests.reveal_fixtures import FakeGateway, FakeNotifier


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under aiosqlite.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        PUBLIC_BASE_URL="https://cards.test",
        PLATFORM_FEE_AMOUNT=500,
        PAYMENT_CURRENCY="brl",
        UNLOCK_MAX_ATTEMPTS=5,
        UNLOCK_ATTEMPT_WINDOW_MINUTES=60,
        UNLOCK_LOCKOUT_MINUTES=15,
        UNLOCK_RESERVATION_TTL_HOURS=24,
        CHECKOUT_RESERVATION_TTL_MINUTES=60,
        RECONCILIATION_WINDOW_HOURS=24,
    )


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
