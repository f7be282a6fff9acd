"""Shared test fixtures."""

from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import src.models  # noqa: F401
from src.db.database import make_session_factory
from src.db.repository import Repository
from src.models.base import Base
from src.models.token import STATUS_PENDING, Token

TOKEN = "0x1111111111111111111111111111111111111111"
PAIR = "0x2222222222222222222222222222222222222222"


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite per test; StaticPool keeps every session on one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield make_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def repo(session_factory: async_sessionmaker[AsyncSession]) -> Repository:
    return Repository(session_factory)


def _make_token(address: str = TOKEN, pair: str = PAIR, **overrides) -> Token:
    values = dict(
        address=address,
        name="Test",
        symbol="TST",
        decimals=18,
        pair_address=pair,
        initial_liquidity=Decimal("10"),
        analysis_status=STATUS_PENDING,
        risk_score=0,
        risk_level="pending",
        risk_details={"status": "pending"},
        is_golden_dog=False,
        is_honeypot=False,
        buy_tax=Decimal(0),
        sell_tax=Decimal(0),
    )
    values.update(overrides)
    return Token(**values)


@pytest.fixture
def make_token():
    """Factory for pending Token rows: ``make_token(address, pair, **overrides)``."""
    return _make_token
