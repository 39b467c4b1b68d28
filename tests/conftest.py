"""Shared pytest fixtures for the booking core tests."""

import os
import sys

sys.dont_write_bytecode = True

# Settings are read at import time; point the engine away from PostgreSQL
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "development")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

import baytup.models  # noqa: E402, F401
from baytup.core.idempotency import webhook_deliveries  # noqa: E402
from baytup.database import Base, get_db  # noqa: E402
from baytup.gateways.base import GatewayType  # noqa: E402
from baytup.main import app  # noqa: E402
from baytup.services.gateway_service import gateway_service  # noqa: E402

from .helpers import FakeGateway, create_listing, create_user  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'baytup.db'}")

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_gateway():
    """Stand-in for the DZD card rail, installed on the shared gateway service."""
    gateway = FakeGateway(GatewayType.SLICKPAY)
    gateway_service.register(gateway)
    yield gateway
    gateway_service.reset()


@pytest.fixture(autouse=True)
def _reset_webhook_deliveries():
    """The delivery dedup store is module-level; keep tests isolated."""
    webhook_deliveries.clear()
    yield
    webhook_deliveries.clear()


@pytest.fixture
async def guest(db):
    return await create_user(db, "guest")


@pytest.fixture
async def host(db):
    return await create_user(db, "host")


@pytest.fixture
async def admin(db):
    return await create_user(db, "admin")


@pytest.fixture
async def listing(db, host):
    return await create_listing(db, host)


@pytest.fixture
async def client(session_maker):
    """ASGI client bound to the test database."""

    async def _get_test_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
