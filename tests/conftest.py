"""
tests/conftest.py
Shared fixtures for the test suite.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import database.models as _models  # noqa: F401  registers table metadata
from core.config import StrategyConfig
from core.types import AgentState


@pytest_asyncio.fixture
async def async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an in-memory SQLite async session for tests."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async_session_factory = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def default_config() -> StrategyConfig:
    return StrategyConfig()


@pytest.fixture
def fresh_state() -> AgentState:
    """A $100 agent at its peak."""
    return AgentState(bankroll=100.0)
