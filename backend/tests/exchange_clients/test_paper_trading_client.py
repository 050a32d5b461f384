"""
Tests for backend/autotrader/exchange_clients/paper_trading_client.py

Tests the in-memory venue used for dry runs: fills at the latest scripted
close, mark-to-market profit, closes and partial closes booking profit to
the balance, and the deal history used by reconciliation.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from autotrader.exceptions import GatewayRejectedError
from autotrader.exchange_clients.paper_trading_client import PaperTradingGateway
from autotrader.trading_engine.types import Direction, OpenPosition, Signal


# =========================================================
# Fixtures
# =========================================================


def _signal(instrument="EURUSD", direction=Direction.LONG, entry=1.1000):
    sign = direction.sign
    return Signal(
        instrument=instrument,
        direction=direction,
        confidence=80.0,
        entry_price=entry,
        stop_loss=entry - sign * 0.0050,
        take_profits=(entry + sign * 0.0075, entry + sign * 0.0100, entry + sign * 0.0150),
        rationale="test",
        priority=180.0,
        expected_profit=1.2,
        risk_reward_ratio=1.5,
    )


@pytest.fixture
def paper(make_bars):
    gateway = PaperTradingGateway(balance=10000.0)
    gateway.set_candles("EURUSD", make_bars([1.0990, 1.1000]))
    return gateway


# =========================================================
# Account & market data
# =========================================================


class TestPaperReads:
    """Tests for reads against the simulated venue"""

    async def test_account_state_without_positions(self, paper):
        state = await paper.get_account_state("acc-1")
        assert state.balance == 10000.0
        assert state.equity == 10000.0

    async def test_account_unavailable_returns_none(self, paper):
        """Failure: a scripted outage reads as None."""
        paper.account_available = False
        assert await paper.get_account_state("acc-1") is None

    async def test_price_bars_respect_limit(self, paper, make_bars):
        paper.set_candles("GBPUSD", make_bars([1.27 + i * 0.001 for i in range(10)]))
        bars = await paper.get_price_bars("acc-1", "GBPUSD", "1h", 3)
        assert len(bars) == 3
        assert bars[-1].close == pytest.approx(1.279)

    async def test_unknown_instrument_has_no_bars(self, paper):
        assert await paper.get_price_bars("acc-1", "XAUUSD", "1h", 250) == []


# =========================================================
# Execution
# =========================================================


class TestPaperExecution:
    """Tests for fills, closes and modifications"""

    async def test_place_trade_fills_at_latest_close(self, paper):
        """Happy path: the fill price is the last scripted close, with the final target as TP."""
        position_id = await paper.place_trade("acc-1", _signal(entry=1.0500), 0.2)

        positions = await paper.get_open_positions("acc-1")
        assert [p.position_id for p in positions] == [position_id]
        assert positions[0].open_price == 1.1000
        assert positions[0].take_profit == pytest.approx(1.0650)

    async def test_place_trade_without_candles_uses_entry_price(self):
        gateway = PaperTradingGateway(balance=5000.0)
        await gateway.place_trade("acc-1", _signal("XAUUSD", entry=2000.0), 0.1)
        positions = await gateway.get_open_positions("acc-1")
        assert positions[0].open_price == 2000.0

    async def test_invalid_volume_rejected(self, paper):
        with pytest.raises(GatewayRejectedError):
            await paper.place_trade("acc-1", _signal(), 0)

    async def test_mark_price_updates_floating_profit(self, paper):
        """Happy path: 50 pips on 0.2 lots of EURUSD is $100."""
        await paper.place_trade("acc-1", _signal(), 0.2)
        paper.mark_price("EURUSD", 1.1050)

        state = await paper.get_account_state("acc-1")
        assert state.equity == pytest.approx(10100.0)
        assert state.balance == 10000.0

    async def test_close_books_profit(self, paper):
        position_id = await paper.place_trade("acc-1", _signal(direction=Direction.SHORT), 0.1)
        paper.mark_price("EURUSD", 1.0950)

        await paper.close_position("acc-1", position_id)

        assert await paper.get_open_positions("acc-1") == []
        assert paper.balance == pytest.approx(10050.0)

    async def test_partial_close_keeps_remainder(self, paper):
        position_id = await paper.place_trade("acc-1", _signal(), 0.2)
        paper.mark_price("EURUSD", 1.1050)

        await paper.partial_close("acc-1", position_id, 0.1)

        positions = await paper.get_open_positions("acc-1")
        assert positions[0].volume == pytest.approx(0.1)
        assert paper.balance == pytest.approx(10050.0)

    async def test_partial_close_of_full_volume_rejected(self, paper):
        """Edge case: a partial close must leave something open."""
        position_id = await paper.place_trade("acc-1", _signal(), 0.2)
        with pytest.raises(GatewayRejectedError):
            await paper.partial_close("acc-1", position_id, 0.2)

    async def test_modify_keeps_unspecified_levels(self, paper):
        position_id = await paper.place_trade("acc-1", _signal(), 0.2)
        await paper.modify_position("acc-1", position_id, stop_loss=1.1000)

        position = (await paper.get_open_positions("acc-1"))[0]
        assert position.stop_loss == 1.1000
        assert position.take_profit == pytest.approx(1.1150)

    async def test_unknown_position_rejected(self, paper):
        with pytest.raises(GatewayRejectedError):
            await paper.close_position("acc-1", "missing")

    async def test_concurrent_fills_get_distinct_ids(self, paper):
        ids = await asyncio.gather(*[paper.place_trade("acc-1", _signal(), 0.1) for _ in range(5)])
        assert len(set(ids)) == 5


# =========================================================
# History
# =========================================================


class TestPaperHistory:
    """Tests for get_trade_history()"""

    async def test_closes_appear_as_deals(self, paper):
        position = OpenPosition(
            position_id="seeded",
            instrument="EURUSD",
            direction=Direction.LONG,
            volume=0.2,
            open_price=1.0950,
            current_price=1.1000,
        )
        paper.add_position(position)
        await paper.partial_close("acc-1", "seeded", 0.1)
        await paper.close_position("acc-1", "seeded")

        now = datetime.utcnow()
        deals = await paper.get_trade_history("acc-1", now - timedelta(days=1), now + timedelta(seconds=1))

        assert [d.position_id for d in deals] == ["seeded", "seeded"]
        assert sum(d.profit for d in deals) == pytest.approx(100.0)

    async def test_window_excludes_old_deals(self, paper):
        paper.add_position(OpenPosition(
            position_id="p", instrument="EURUSD", direction=Direction.LONG,
            volume=0.1, open_price=1.1, current_price=1.1,
        ))
        await paper.close_position("acc-1", "p")

        past = datetime(2020, 1, 1)
        assert await paper.get_trade_history("acc-1", past, past + timedelta(days=1)) == []
