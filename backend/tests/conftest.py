"""
Shared test fixtures for the autotrader backend tests.

Provides reusable fixtures for:
- Async database sessions (in-memory SQLite) and a SQL-backed ledger
- Mock ledger and mock execution gateway
- Price bar factories
"""

from datetime import datetime, timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from autotrader.trading_engine import account_lease
from autotrader.trading_engine.types import AccountState, PriceBar


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine():
    """Create an in-memory async SQLite engine for testing."""
    from autotrader.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,  # one shared connection so every session sees the same database
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    """Provide an async database session for assertions."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def sql_ledger(session_maker):
    from autotrader.services.ledger_service import SqlLedger

    return SqlLedger(session_maker)


# ---------------------------------------------------------------------------
# Mock collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_ledger():
    """Ledger double that records calls without touching a database."""
    ledger = MagicMock()
    ledger.create_trade_record = AsyncMock(return_value=1)
    ledger.update_trade_record = AsyncMock(return_value=True)
    ledger.append_audit_entry = AsyncMock()
    ledger.get_open_trade_records = AsyncMock(return_value=[])
    ledger.get_known_trade_ids = AsyncMock(return_value=set())
    ledger.record_closed_trade = AsyncMock(return_value=1)
    return ledger


@pytest.fixture
def mock_gateway():
    """Execution gateway double with a $10,000 account and no positions."""
    gateway = MagicMock()
    gateway.get_account_state = AsyncMock(return_value=AccountState(
        balance=10000.0, equity=10000.0, margin=0.0, free_margin=10000.0,
    ))
    gateway.get_open_positions = AsyncMock(return_value=[])
    gateway.get_price_bars = AsyncMock(return_value=[])
    gateway.get_trade_history = AsyncMock(return_value=[])
    gateway.place_trade = AsyncMock(return_value="trade-1")
    gateway.close_position = AsyncMock()
    gateway.partial_close = AsyncMock()
    gateway.modify_position = AsyncMock()
    gateway.close = AsyncMock()
    return gateway


@pytest.fixture(autouse=True)
def clear_account_locks():
    """Account leases are module-level; give every test a clean registry."""
    account_lease._account_locks.clear()
    yield
    account_lease._account_locks.clear()


# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_bars():
    """Build ascending hourly PriceBars from a list of closes."""
    def _make_bars(closes, spread=0.001, volume=100.0, volumes=None, start=None):
        start = start or datetime(2024, 1, 1)
        bars = []
        prev = closes[0]
        for i, close in enumerate(closes):
            bars.append(PriceBar(
                timestamp=start + timedelta(hours=i),
                open=prev,
                high=max(prev, close) + spread,
                low=min(prev, close) - spread,
                close=close,
                volume=volumes[i] if volumes else volume,
            ))
            prev = close
        return bars
    return _make_bars
