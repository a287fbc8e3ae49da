"""Shared fixtures: a controllable clock and throwaway SQLite databases."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from otp_lifecycle.clock import Clock
from otp_lifecycle.config import OtpPolicy
from otp_lifecycle.models.error_log import ErrorLog  # noqa: F401  (registers table)
from otp_lifecycle.models.otp import Base
from otp_lifecycle.services.otp_service import OtpService

START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


async def _make_factory(url: str):
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session_factory():
    """In-memory database; every session shares one connection."""
    engine, factory = await _make_factory("sqlite+aiosqlite://")
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database, so concurrent sessions get separate connections."""
    engine, factory = await _make_factory(f"sqlite+aiosqlite:///{tmp_path / 'otp.db'}")
    yield factory
    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> OtpPolicy:
    return OtpPolicy()


@pytest.fixture
def notifier():
    """Mocked notifier — never actually sends emails."""
    mock = AsyncMock()
    mock.send_code.return_value = True
    return mock


@pytest.fixture
def otp_service(session_factory, notifier, policy, clock) -> OtpService:
    return OtpService(session_factory, notifier, policy=policy, clock=clock)
