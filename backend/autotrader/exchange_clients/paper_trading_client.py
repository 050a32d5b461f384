"""
Paper Trading Gateway

Simulates an execution venue in memory for dry runs and tests. Price data
is scripted per instrument (set_candles / mark_price); fills happen at the
latest close and profit is marked to market with the instrument's pip
configuration.
"""

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from autotrader.config import settings
from autotrader.constants import get_pair_config
from autotrader.exceptions import GatewayRejectedError
from autotrader.exchange_clients.base import ExecutionGateway
from autotrader.trading_engine.types import (
    AccountState,
    HistoryDeal,
    OpenPosition,
    PriceBar,
    Signal,
)

logger = logging.getLogger(__name__)


def _profit(position: OpenPosition, price: float, volume: float) -> float:
    config = get_pair_config(position.instrument)
    pips = (price - position.open_price) * position.direction.sign * config["pip_multiplier"]
    return pips * config["pip_value"] * volume


class PaperTradingGateway(ExecutionGateway):
    """
    Simulated execution venue.

    Position and balance updates are serialized behind a single asyncio lock
    so concurrent callers never act on a stale snapshot.
    """

    def __init__(self, balance: Optional[float] = None, candles: Optional[Dict[str, List[PriceBar]]] = None):
        self.balance = settings.paper_starting_balance if balance is None else balance
        self.account_available = True
        self._candles: Dict[str, List[PriceBar]] = dict(candles or {})
        self._positions: Dict[str, OpenPosition] = {}
        self._deals: List[HistoryDeal] = []
        self._lock = asyncio.Lock()
        logger.info(f"Initialized paper trading gateway (balance={self.balance:.2f})")

    # ==========================================================
    # SCRIPTING
    # ==========================================================

    def set_candles(self, instrument: str, bars: List[PriceBar]):
        self._candles[instrument] = list(bars)
        if bars:
            self.mark_price(instrument, bars[-1].close)

    def mark_price(self, instrument: str, price: float):
        """Mark every open position on an instrument to a new price"""
        for position_id, position in list(self._positions.items()):
            if position.instrument == instrument:
                self._positions[position_id] = replace(
                    position,
                    current_price=price,
                    profit=_profit(position, price, position.volume),
                )

    def add_position(self, position: OpenPosition):
        self._positions[position.position_id] = position

    def _latest_price(self, instrument: str, fallback: float) -> float:
        bars = self._candles.get(instrument)
        return bars[-1].close if bars else fallback

    def _get(self, position_id: str) -> OpenPosition:
        position = self._positions.get(position_id)
        if position is None:
            raise GatewayRejectedError(f"Unknown position {position_id}")
        return position

    def _record_deal(self, position: OpenPosition, volume: float, profit: float):
        self._deals.append(HistoryDeal(
            deal_id=uuid.uuid4().hex,
            instrument=position.instrument,
            direction=position.direction,
            volume=volume,
            price=position.current_price,
            profit=profit,
            time=datetime.utcnow(),
            position_id=position.position_id,
        ))

    # ==========================================================
    # GATEWAY INTERFACE
    # ==========================================================

    async def get_account_state(self, account_ref: str) -> Optional[AccountState]:
        if not self.account_available:
            return None
        floating = sum(p.profit for p in self._positions.values())
        return AccountState(
            balance=self.balance,
            equity=self.balance + floating,
            margin=0.0,
            free_margin=self.balance + floating,
        )

    async def get_price_bars(self, account_ref: str, instrument: str, timeframe: str, limit: int) -> List[PriceBar]:
        return list(self._candles.get(instrument, []))[-limit:]

    async def get_open_positions(self, account_ref: str) -> List[OpenPosition]:
        return list(self._positions.values())

    async def get_trade_history(self, account_ref: str, start: datetime, end: datetime) -> List[HistoryDeal]:
        return [d for d in self._deals if start <= d.time <= end]

    async def place_trade(self, account_ref: str, signal: Signal, volume: float) -> str:
        if volume <= 0:
            raise GatewayRejectedError(f"Invalid volume {volume}")

        async with self._lock:
            price = self._latest_price(signal.instrument, signal.entry_price)
            position_id = f"paper-{uuid.uuid4().hex[:12]}"
            self._positions[position_id] = OpenPosition(
                position_id=position_id,
                instrument=signal.instrument,
                direction=signal.direction,
                volume=volume,
                open_price=price,
                current_price=price,
                stop_loss=signal.stop_loss,
                take_profit=signal.final_take_profit,
                profit=0.0,
                open_time=datetime.utcnow(),
            )

        logger.info(f"Paper fill: {signal.instrument} {signal.direction.value} {volume} lots @ {price}")
        return position_id

    async def close_position(self, account_ref: str, position_id: str) -> None:
        async with self._lock:
            position = self._get(position_id)
            profit = _profit(position, position.current_price, position.volume)
            self.balance += profit
            del self._positions[position_id]
            self._record_deal(position, position.volume, profit)

    async def partial_close(self, account_ref: str, position_id: str, volume: float) -> None:
        async with self._lock:
            position = self._get(position_id)
            if volume <= 0 or volume >= position.volume:
                raise GatewayRejectedError(
                    f"Partial volume {volume} invalid for position volume {position.volume}"
                )
            profit = _profit(position, position.current_price, volume)
            self.balance += profit
            remaining = round(position.volume - volume, 2)
            self._positions[position_id] = replace(
                position,
                volume=remaining,
                profit=_profit(position, position.current_price, remaining),
            )
            self._record_deal(position, volume, profit)

    async def modify_position(
        self,
        account_ref: str,
        position_id: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> None:
        async with self._lock:
            position = self._get(position_id)
            self._positions[position_id] = replace(
                position,
                stop_loss=position.stop_loss if stop_loss is None else stop_loss,
                take_profit=position.take_profit if take_profit is None else take_profit,
            )
