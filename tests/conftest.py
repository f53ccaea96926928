"""
Shared fixtures: SQLite-backed sessions and in-memory fakes for the
store, object storage, email transport and event publisher.
"""

import os

os.environ.setdefault("DR_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DR_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("DR_LOG_FORMAT", "text")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import devreview.models  # noqa: F401  populate metadata

from .fakes import FakeStorage, FakeTransport, InMemoryStore, RecordingPublisher


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db_session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def timestamps():
    """Distinct, increasing created_at values."""
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    return [base + timedelta(minutes=i) for i in range(10)]
