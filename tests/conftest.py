# tests/conftest.py
import itertools
import os

# Must be set before recordshop.database is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from recordshop.core.config import Settings, clear_settings_cache
from recordshop.core.enums import RecordStatus
from recordshop.database import Base
from recordshop import models  # noqa: F401 - registers every table on Base.metadata
from recordshop.models.record import Record

from tests.mocks.mock_gateway import MockCatalogGateway

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings from the environment for every test"""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        DISCOGS_USERNAME="test_seller",
        DISCOGS_TOKEN="test_token",
        DISCOGS_PAGE_SIZE=2,
        DISCOGS_PAGE_DELAY_SECONDS=0,
        STORE_OWNER_ID=1,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        SETTLEMENT_TIMEOUT_SECONDS=5,
        SMTP_HOST="",
    )


@pytest.fixture(scope="function")
async def test_engine():
    """In-memory SQLite engine with tables created for each test function."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    """Provide a database session for tests"""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def mock_gateway():
    return MockCatalogGateway()


@pytest.fixture
def make_record(db_session):
    """Factory for committed records. Listing and release ids are unique unless overridden."""
    counter = itertools.count(1)

    async def _make(**overrides) -> Record:
        n = next(counter)
        fields = dict(
            title=f"Test Record {n}",
            artist="Test Artist",
            label="Test Label",
            price=25.0,
            condition="Very Good Plus (VG+)",
            sleeve_condition="Very Good (VG)",
            quantity=1,
            status=RecordStatus.FOR_SALE,
            owner_id=1,
            discogs_listing_id=1000 + n,
            discogs_release_id=5000 + n,
        )
        fields.update(overrides)
        record = Record(**fields)
        db_session.add(record)
        await db_session.commit()
        return record

    return _make

