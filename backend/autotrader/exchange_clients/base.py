"""
Execution Gateway Abstract Base Class

This module defines the interface every execution venue adapter must
implement. The trading engine only ever talks to the brokerage through it.

Conventions:
- Reads return engine value types (AccountState, PriceBar, OpenPosition, ...)
- get_account_state returns None when the account is unavailable
- Every other failure raises a GatewayError subclass (timeout, rejected,
  unavailable); adapters never leak transport exceptions
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from autotrader.trading_engine.types import AccountState, HistoryDeal, OpenPosition, PriceBar, Signal


class ExecutionGateway(ABC):
    """Abstract base class for brokerage execution venues."""

    # ========================================
    # ACCOUNT & MARKET DATA
    # ========================================

    @abstractmethod
    async def get_account_state(self, account_ref: str) -> Optional[AccountState]:
        """
        Get balance, equity, margin and free margin.

        Returns:
            AccountState, or None when the account cannot be read
        """
        pass

    @abstractmethod
    async def get_price_bars(
        self,
        account_ref: str,
        instrument: str,
        timeframe: str,
        limit: int,
    ) -> List[PriceBar]:
        """
        Get historical candles, oldest first.

        Args:
            instrument: Ticker (e.g. "EURUSD")
            timeframe: Gateway timeframe ("1m", "15m", "1h", ...)
            limit: Maximum number of bars
        """
        pass

    @abstractmethod
    async def get_open_positions(self, account_ref: str) -> List[OpenPosition]:
        """Get all open positions on the account."""
        pass

    @abstractmethod
    async def get_trade_history(
        self,
        account_ref: str,
        start: datetime,
        end: datetime,
    ) -> List[HistoryDeal]:
        """Get executed deals between start and end (for reconciliation)."""
        pass

    # ========================================
    # EXECUTION
    # ========================================

    @abstractmethod
    async def place_trade(self, account_ref: str, signal: Signal, volume: float) -> str:
        """
        Open a market position for a signal.

        Returns:
            Venue trade/order id

        Raises:
            GatewayError: order rejected or venue unreachable
        """
        pass

    @abstractmethod
    async def close_position(self, account_ref: str, position_id: str) -> None:
        """Fully close a position."""
        pass

    @abstractmethod
    async def partial_close(self, account_ref: str, position_id: str, volume: float) -> None:
        """Close `volume` lots of a position, leaving the remainder open."""
        pass

    @abstractmethod
    async def modify_position(
        self,
        account_ref: str,
        position_id: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> None:
        """Change a position's stop loss and/or take profit."""
        pass

    async def close(self):
        """Release any underlying connections."""
        pass
