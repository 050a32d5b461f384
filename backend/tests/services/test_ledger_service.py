"""
Tests for backend/autotrader/services/ledger_service.py

Runs SqlLedger against an in-memory SQLite database.
"""

from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from unittest.mock import AsyncMock, patch

from autotrader.exceptions import LedgerError
from autotrader.models import AuditLogEntry, TradeRecord
from autotrader.trading_engine.types import Direction, Signal


def _signal(instrument="EURUSD", forced=False):
    return Signal(
        instrument=instrument,
        direction=Direction.LONG,
        confidence=82.0,
        entry_price=1.1000,
        stop_loss=1.0950,
        take_profits=(1.1075, 1.1100, 1.1150),
        rationale="Uptrend (price > EMA200); MACD bullish",
        priority=182.0,
        expected_profit=1.23,
        risk_reward_ratio=1.5,
        is_forced=forced,
    )


class TestCreateTradeRecord:
    """Tests for SqlLedger.create_trade_record()"""

    async def test_persists_signal_fields(self, sql_ledger, db_session):
        """Happy path: the record captures the signal and the final target."""
        record_id = await sql_ledger.create_trade_record("acc-1", _signal(forced=True), 0.2, "g-1")

        record = await db_session.get(TradeRecord, record_id)
        assert record.instrument == "EURUSD"
        assert record.direction == "long"
        assert record.volume == 0.2
        assert record.take_profit == pytest.approx(1.1150)
        assert record.is_forced is True
        assert record.status == "open"
        assert record.gateway_trade_id == "g-1"

    async def test_write_failure_raises_ledger_error(self, sql_ledger):
        """Failure: a database error surfaces as LedgerError."""
        with patch(
            "sqlalchemy.ext.asyncio.AsyncSession.commit",
            new=AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full"))),
        ):
            with pytest.raises(LedgerError):
                await sql_ledger.create_trade_record("acc-1", _signal(), 0.2, "g-1")


class TestUpdateTradeRecord:
    """Tests for SqlLedger.update_trade_record()"""

    async def test_closes_open_record(self, sql_ledger, db_session):
        record_id = await sql_ledger.create_trade_record("acc-1", _signal(), 0.2, "g-1")
        close_time = datetime(2024, 2, 1, 12, 0)

        updated = await sql_ledger.update_trade_record(
            "acc-1", "EURUSD", status="closed", profit=55.0, close_price=1.1030, close_time=close_time,
        )

        assert updated is True
        record = await db_session.get(TradeRecord, record_id)
        assert record.status == "closed"
        assert record.profit == 55.0
        assert record.close_price == 1.1030
        assert record.close_time == close_time

    async def test_no_open_record_returns_false(self, sql_ledger):
        """Edge case: nothing open for the instrument is reported, not raised."""
        assert await sql_ledger.update_trade_record("acc-1", "GBPUSD", status="closed") is False

    async def test_updates_latest_open_record_only(self, sql_ledger, db_session):
        """Edge case: with two open records the most recent one is updated."""
        older = await sql_ledger.create_trade_record("acc-1", _signal(), 0.1, "g-1", open_time=datetime(2024, 1, 1))
        newer = await sql_ledger.create_trade_record("acc-1", _signal(), 0.1, "g-2", open_time=datetime(2024, 1, 2))

        await sql_ledger.update_trade_record("acc-1", "EURUSD", status="closed")

        assert (await db_session.get(TradeRecord, older)).status == "open"
        assert (await db_session.get(TradeRecord, newer)).status == "closed"

    async def test_other_accounts_untouched(self, sql_ledger):
        await sql_ledger.create_trade_record("acc-2", _signal(), 0.1, "g-1")
        assert await sql_ledger.update_trade_record("acc-1", "EURUSD", status="closed") is False


class TestAuditAndQueries:
    """Tests for append_audit_entry() and the read helpers"""

    async def test_audit_entry_is_appended(self, sql_ledger, db_session):
        await sql_ledger.append_audit_entry("acc-1", "TRADE_OPENED", {"instrument": "EURUSD", "volume": 0.2})
        await sql_ledger.append_audit_entry("acc-1", "POSITION_CLOSED", {"instrument": "EURUSD"})

        result = await db_session.execute(select(AuditLogEntry).order_by(AuditLogEntry.id))
        entries = result.scalars().all()
        assert [e.action for e in entries] == ["TRADE_OPENED", "POSITION_CLOSED"]
        assert entries[0].details["volume"] == 0.2

    async def test_open_records_and_known_ids(self, sql_ledger):
        await sql_ledger.create_trade_record("acc-1", _signal("EURUSD"), 0.1, "g-1")
        await sql_ledger.create_trade_record("acc-1", _signal("GBPUSD"), 0.1, "g-2")
        await sql_ledger.update_trade_record("acc-1", "GBPUSD", status="closed")

        open_records = await sql_ledger.get_open_trade_records("acc-1")
        assert [r.instrument for r in open_records] == ["EURUSD"]
        assert await sql_ledger.get_known_trade_ids("acc-1") == {"g-1", "g-2"}
        assert await sql_ledger.get_known_trade_ids("acc-2") == set()

    async def test_record_closed_trade(self, sql_ledger, db_session):
        record_id = await sql_ledger.record_closed_trade(
            "acc-1",
            instrument="USDJPY",
            direction="short",
            volume=0.3,
            open_price=150.0,
            profit=-21.0,
            close_price=150.1,
            open_time=datetime(2024, 1, 1),
            close_time=datetime(2024, 1, 2),
            gateway_trade_id="g-9",
        )

        record = await db_session.get(TradeRecord, record_id)
        assert record.status == "closed"
        assert record.profit == -21.0
        assert record.gateway_trade_id == "g-9"
