"""
Position Close Analyzer

Decides, fresh every cycle, what to do with one open position. There is no
persisted analyzer state: the decision is derived only from the position
snapshot (open price, current price, stop) and the latest price bars, so
evaluating the same inputs twice always yields the same decision.

Exit rules (first match wins):
1. HOLD on insufficient data or zero volatility
2. CLOSE when the stop is breached or the adverse move reaches 1R
3. CLOSE when the favourable move reaches 3R (final target)
4. CLOSE when the stop is already protected and momentum turns against us
5. PARTIAL_CLOSE 50% + stop to breakeven at 1.5R while the stop is unprotected
6. PARTIAL_CLOSE 25% + stop to +0.5R at 2R while the stop is still near breakeven
7. MOVE_STOP to price -/+ 1.5 ATR once profit is locked, when that tightens the stop
8. HOLD

R is the open-to-stop distance while the stop is on the losing side of the
open price, otherwise 2x the current ATR. Each milestone moves the stop past
the condition that let it fire: rule 5 makes the stop protected and rule 6
locks more than a quarter R, so neither repeats. Between the two milestones
the stop stays at breakeven; trailing starts after the second one.
"""

import logging
from typing import Optional, Sequence

from autotrader.constants import CLOSE_ANALYSIS_MIN_BARS, STOP_ATR_MULTIPLE, TAKE_PROFIT_R_MULTIPLES
from autotrader.indicator_calculator import calculate_atr, calculate_macd, calculate_rsi
from autotrader.trading_engine.types import (
    DecisionAction,
    Direction,
    OpenPosition,
    PositionDecision,
    PriceBar,
)

logger = logging.getLogger(__name__)

PARTIAL_CLOSE_PERCENT = 50.0
SECOND_PARTIAL_CLOSE_PERCENT = 25.0
SECOND_STAGE_LOCK_R = 0.5  # profit locked by the stop after the 2R milestone
TRAIL_ATR_MULTIPLE = 1.5
RSI_EXHAUSTION_LONG = 80
RSI_EXHAUSTION_SHORT = 20


def is_stop_protected(position: OpenPosition) -> bool:
    """True when the stop sits at or beyond breakeven"""
    if not position.stop_loss:
        return False
    if position.direction is Direction.LONG:
        return position.stop_loss >= position.open_price
    return position.stop_loss <= position.open_price


def _stop_breached(position: OpenPosition) -> bool:
    if not position.stop_loss:
        return False
    if position.direction is Direction.LONG:
        return position.current_price <= position.stop_loss
    return position.current_price >= position.stop_loss


def _risk_unit(position: OpenPosition, atr: float) -> float:
    if position.stop_loss and not is_stop_protected(position):
        return abs(position.open_price - position.stop_loss)
    return atr * STOP_ATR_MULTIPLE


def _locked_r(position: OpenPosition, risk: float) -> float:
    """Profit a protected stop has locked in, measured in R"""
    return (position.stop_loss - position.open_price) * position.direction.sign / risk


def _tightens(position: OpenPosition, new_stop: float) -> bool:
    if not position.stop_loss:
        return True
    return (new_stop - position.stop_loss) * position.direction.sign > 0


def _momentum_against(position: OpenPosition, rsi: float, macd) -> Optional[str]:
    if position.direction is Direction.LONG:
        if rsi > RSI_EXHAUSTION_LONG:
            return f"RSI overbought reversal ({rsi:.1f})"
        if macd.histogram < 0 and macd.value < macd.signal:
            return "MACD turned bearish"
    else:
        if rsi < RSI_EXHAUSTION_SHORT:
            return f"RSI oversold reversal ({rsi:.1f})"
        if macd.histogram > 0 and macd.value > macd.signal:
            return "MACD turned bullish"
    return None


def analyze_position_close(position: OpenPosition, candles: Sequence[PriceBar]) -> PositionDecision:
    """
    Analyze whether to close, partially close, trail or hold a position

    Args:
        position: Read-only snapshot from the execution venue
        candles: Fresh ascending price bars for the position's instrument

    Returns:
        PositionDecision (exactly one action)
    """
    if len(candles) < CLOSE_ANALYSIS_MIN_BARS:
        return PositionDecision.hold("Insufficient data")

    atr = calculate_atr(candles)
    if atr <= 0:
        return PositionDecision.hold("No volatility (ATR is zero)")

    closes = [c.close for c in candles]
    sign = position.direction.sign
    price = position.current_price
    risk = _risk_unit(position, atr)
    profit_r = (price - position.open_price) * sign / risk
    protected = is_stop_protected(position)

    # 2. Structural invalidation
    if _stop_breached(position):
        return PositionDecision(
            DecisionAction.CLOSE,
            f"Stop level {position.stop_loss:.5f} breached at {price:.5f}",
        )
    if profit_r <= -1:
        return PositionDecision(
            DecisionAction.CLOSE,
            f"Invalidated: adverse move {profit_r:.2f}R",
        )

    # 3. Final target
    final_r = TAKE_PROFIT_R_MULTIPLES[-1]
    if profit_r >= final_r:
        return PositionDecision(
            DecisionAction.CLOSE,
            f"Final target reached ({profit_r:.2f}R) - full close",
        )

    # 4. Profit deteriorating after having been favourable
    if protected:
        reversal = _momentum_against(position, calculate_rsi(closes), calculate_macd(closes))
        if reversal:
            return PositionDecision(
                DecisionAction.CLOSE,
                f"{reversal} - protecting profit",
            )

    # 5. First milestone: bank half and move the stop to breakeven
    first_r = TAKE_PROFIT_R_MULTIPLES[0]
    if not protected and profit_r >= first_r:
        return PositionDecision(
            DecisionAction.PARTIAL_CLOSE,
            f"TP1 reached ({profit_r:.2f}R) - closing {PARTIAL_CLOSE_PERCENT:g}%, stop to breakeven",
            close_percent=PARTIAL_CLOSE_PERCENT,
            new_stop_loss=position.open_price,
        )

    # 6. Second milestone: bank a quarter and lock +0.5R
    # Near breakeven: less than half of SECOND_STAGE_LOCK_R locked
    at_breakeven = protected and _locked_r(position, risk) < SECOND_STAGE_LOCK_R / 2
    second_r = TAKE_PROFIT_R_MULTIPLES[1]
    if at_breakeven and profit_r >= second_r:
        new_stop = position.open_price + sign * risk * SECOND_STAGE_LOCK_R
        return PositionDecision(
            DecisionAction.PARTIAL_CLOSE,
            f"TP2 reached ({profit_r:.2f}R) - closing {SECOND_PARTIAL_CLOSE_PERCENT:g}%, "
            f"stop to +{SECOND_STAGE_LOCK_R:g}R",
            close_percent=SECOND_PARTIAL_CLOSE_PERCENT,
            new_stop_loss=new_stop,
        )

    # 7. Trail the locked stop behind price
    if protected and not at_breakeven:
        new_stop = price - sign * atr * TRAIL_ATR_MULTIPLE
        if _tightens(position, new_stop):
            return PositionDecision(
                DecisionAction.MOVE_STOP,
                f"Trailing stop to {new_stop:.5f}",
                new_stop_loss=new_stop,
            )

    return PositionDecision.hold("No exit condition met")
