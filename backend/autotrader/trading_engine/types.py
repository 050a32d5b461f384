"""
Engine value types.

All of these are immutable snapshots: price bars and signals are never
mutated after creation, and open positions / account state are read-only
views of what the execution venue reported for the current cycle.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class DecisionAction(str, Enum):
    HOLD = "HOLD"
    CLOSE = "CLOSE"
    PARTIAL_CLOSE = "PARTIAL_CLOSE"
    MOVE_STOP = "MOVE_STOP"


@dataclass(frozen=True)
class PriceBar:
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class MACDResult:
    value: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class IndicatorSet:
    rsi: float
    macd: MACDResult
    ema20: float
    ema50: float
    ema200: float
    atr: float
    bollinger: BollingerBands


@dataclass(frozen=True)
class Signal:
    instrument: str
    direction: Direction
    confidence: float
    entry_price: float
    stop_loss: float
    take_profits: Tuple[float, ...]
    rationale: str
    priority: float
    expected_profit: float
    risk_reward_ratio: float
    indicators: Optional[IndicatorSet] = None
    is_forced: bool = False

    @property
    def take_profit(self) -> float:
        """Primary (first) take-profit level"""
        return self.take_profits[0]

    @property
    def final_take_profit(self) -> float:
        return self.take_profits[-1]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        data["take_profits"] = list(self.take_profits)
        return data


@dataclass(frozen=True)
class OpenPosition:
    position_id: str
    instrument: str
    direction: Direction
    volume: float
    open_price: float
    current_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    profit: float = 0.0
    open_time: Optional[datetime] = None


@dataclass(frozen=True)
class PositionDecision:
    action: DecisionAction
    reason: str
    close_percent: Optional[float] = None
    new_stop_loss: Optional[float] = None

    @classmethod
    def hold(cls, reason: str) -> "PositionDecision":
        return cls(DecisionAction.HOLD, reason)


@dataclass(frozen=True)
class AccountState:
    balance: float
    equity: float
    margin: float
    free_margin: float


@dataclass(frozen=True)
class HistoryDeal:
    """A deal from the venue's trade history (used for reconciliation)."""
    deal_id: str
    instrument: str
    direction: Direction
    volume: float
    price: float
    profit: float
    time: datetime
    position_id: Optional[str] = None


@dataclass
class CycleResult:
    """Summary of one run_cycle invocation. Always returned, never raised."""
    account_ref: str
    opened: int = 0
    closed: int = 0
    partially_closed: int = 0
    stops_moved: int = 0
    signals: List[Signal] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    available_slots: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_ref": self.account_ref,
            "opened": self.opened,
            "closed": self.closed,
            "partially_closed": self.partially_closed,
            "stops_moved": self.stops_moved,
            "signals": [s.to_dict() for s in self.signals],
            "errors": list(self.errors),
            "skipped": list(self.skipped),
            "available_slots": self.available_slots,
        }
