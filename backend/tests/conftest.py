"""Pytest fixtures for the reminder service tests."""
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from lecturelet import models  # noqa: F401
from lecturelet.database import Base
from lecturelet.services.push_sender import PushConfig, PushSenderService
from lecturelet.services.sms_sender import SmsConfig, SmsSenderService

from .helpers import FakeTransport

UTC = ZoneInfo("UTC")


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite database file per test, with every table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ios_transport():
    return FakeTransport("ios")


@pytest.fixture
def android_transport():
    return FakeTransport("android")


@pytest.fixture
def push_sender(ios_transport, android_transport):
    """Push sender wired to in-memory transports."""
    sender = PushSenderService()
    sender.configure(
        PushConfig(timeout_seconds=1.0, chunk_attempts=2),
        transports=[ios_transport, android_transport],
    )
    return sender


@pytest.fixture
def sms_sender():
    return SmsSenderService(SmsConfig(api_url="https://sms.test/send", api_key="key", max_length=160))
