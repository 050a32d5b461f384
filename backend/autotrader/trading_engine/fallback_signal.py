"""
Forced Entry Strategy

Relaxed-threshold signal used only when discovery found nothing and slots
remain free. It trades the simple bias of the current price against its
recent average, at a fixed low confidence, and is labelled FORCED in the
rationale and on the Signal so it can be audited (or disabled through
`settings.forced_entry_enabled`) separately from the primary scorer.
"""

import logging
from typing import Optional, Sequence

from autotrader.constants import STOP_ATR_MULTIPLE, TAKE_PROFIT_R_MULTIPLES, get_tier_weight
from autotrader.indicator_calculator import calculate_atr, calculate_sma
from autotrader.trading_engine.signal_scorer import build_levels
from autotrader.trading_engine.types import Direction, PriceBar, Signal

logger = logging.getLogger(__name__)

FORCED_CONFIDENCE = 50
BIAS_LOOKBACK = 20
ATR_PERIOD = 14


def build_forced_signal(instrument: str, candles: Sequence[PriceBar]) -> Optional[Signal]:
    """
    Build a low-confidence directional signal from price vs. recent average.

    Returns None when there is not enough data, no volatility to place a
    stop, or price sits exactly on its average (no bias).
    """
    if len(candles) < max(BIAS_LOOKBACK, ATR_PERIOD + 1):
        return None

    closes = [c.close for c in candles]
    price = closes[-1]
    average = calculate_sma(closes, BIAS_LOOKBACK)
    atr = calculate_atr(candles, ATR_PERIOD)

    if atr <= 0 or price == average:
        return None

    direction = Direction.LONG if price > average else Direction.SHORT
    stop_loss, take_profits = build_levels(price, atr, direction)
    risk_reward = TAKE_PROFIT_R_MULTIPLES[0]
    side = "above" if direction is Direction.LONG else "below"

    logger.info(f"{instrument}: FORCED {direction.value.upper()} entry, price {side} {BIAS_LOOKBACK}-bar average")

    return Signal(
        instrument=instrument,
        direction=direction,
        confidence=FORCED_CONFIDENCE,
        entry_price=price,
        stop_loss=stop_loss,
        take_profits=take_profits,
        rationale=(
            f"FORCED ENTRY: price {price:.5f} {side} {BIAS_LOOKBACK}-bar average {average:.5f} "
            f"(stop {STOP_ATR_MULTIPLE:g} ATR)"
        ),
        priority=get_tier_weight(instrument) + FORCED_CONFIDENCE,
        expected_profit=risk_reward * (FORCED_CONFIDENCE / 100),
        risk_reward_ratio=risk_reward,
        indicators=None,
        is_forced=True,
    )
