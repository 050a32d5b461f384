"""
Signal Scorer

Combines indicator readings into an additive point score per direction and
emits a Signal only when one direction clears the confidence floor and
strictly beats the other.

Scoring rules (evaluated in this order, rationale keeps the same order):
1. Trend alignment      EMA20 > EMA50 > EMA200            +20 (mirror short)
2. EMA positioning      price above EMA20 and EMA50       +10 (mirror short)
3. RSI                  <30 +25 long, >70 +25 short,
                        30-40 +10 long, 60-70 +10 short (one band only)
4. MACD                 histogram and line/signal agree   +15
5. Bollinger            price at/through a band           +20
6. Volume confirmation  last volume > 1.5x 20-bar average +10 to BOTH sides
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from autotrader.constants import (
    CONFIDENCE_FLOOR,
    STOP_ATR_MULTIPLE,
    TAKE_PROFIT_R_MULTIPLES,
    TREND_LOOKBACK,
    VOLUME_LOOKBACK,
    VOLUME_SPIKE_MULTIPLIER,
    get_tier_weight,
)
from autotrader.indicator_calculator import calculate_indicator_set
from autotrader.trading_engine.types import Direction, IndicatorSet, PriceBar, Signal

logger = logging.getLogger(__name__)


@dataclass
class DirectionalScore:
    long_score: int = 0
    short_score: int = 0
    long_reasons: List[str] = field(default_factory=list)
    short_reasons: List[str] = field(default_factory=list)
    # Every rule that fired, in evaluation order
    fired: List[str] = field(default_factory=list)

    def add_long(self, points: int, reason: str):
        self.long_score += points
        self.long_reasons.append(reason)
        self.fired.append(reason)

    def add_short(self, points: int, reason: str):
        self.short_score += points
        self.short_reasons.append(reason)
        self.fired.append(reason)

    @property
    def long_confidence(self) -> int:
        return min(self.long_score, 100)

    @property
    def short_confidence(self) -> int:
        return min(self.short_score, 100)


def has_volume_spike(candles: Sequence[PriceBar], lookback: int = VOLUME_LOOKBACK) -> bool:
    """Latest bar volume above 1.5x the trailing average (latest bar included)"""
    if len(candles) < lookback:
        return False
    avg_volume = sum(c.volume for c in candles[-lookback:]) / lookback
    return avg_volume > 0 and candles[-1].volume > avg_volume * VOLUME_SPIKE_MULTIPLIER


def score_indicators(price: float, ind: IndicatorSet, volume_spike: bool = False) -> DirectionalScore:
    """Apply the additive scoring rules to one indicator snapshot"""
    score = DirectionalScore()

    # 1. Trend alignment
    if ind.ema20 > ind.ema50 > ind.ema200:
        score.add_long(20, "Uptrend (EMA20 > EMA50 > EMA200)")
    elif ind.ema20 < ind.ema50 < ind.ema200:
        score.add_short(20, "Downtrend (EMA20 < EMA50 < EMA200)")

    # 2. EMA positioning
    if price > ind.ema20 and price > ind.ema50:
        score.add_long(10, "Price above EMA20/EMA50")
    elif price < ind.ema20 and price < ind.ema50:
        score.add_short(10, "Price below EMA20/EMA50")

    # 3. RSI bands are disjoint
    if ind.rsi < 30:
        score.add_long(25, f"RSI oversold ({ind.rsi:.1f})")
    elif ind.rsi > 70:
        score.add_short(25, f"RSI overbought ({ind.rsi:.1f})")
    elif ind.rsi < 40:
        score.add_long(10, f"RSI weak ({ind.rsi:.1f})")
    elif ind.rsi > 60:
        score.add_short(10, f"RSI strong ({ind.rsi:.1f})")

    # 4. MACD
    macd = ind.macd
    if macd.histogram > 0 and macd.value > macd.signal:
        score.add_long(15, "MACD bullish")
    elif macd.histogram < 0 and macd.value < macd.signal:
        score.add_short(15, "MACD bearish")

    # 5. Bollinger band touches (a flat band carries no information)
    bands = ind.bollinger
    if bands.upper > bands.lower:
        if price <= bands.lower:
            score.add_long(20, "Price at lower Bollinger band")
        elif price >= bands.upper:
            score.add_short(20, "Price at upper Bollinger band")

    # 6. Volume confirms whichever side already has support
    if volume_spike:
        score.long_score += 10
        score.short_score += 10
        score.fired.append("Volume spike")

    return score


def select_direction(long_confidence: float, short_confidence: float,
                     floor: float = CONFIDENCE_FLOOR) -> Optional[Direction]:
    """Dominant direction at or above the floor, or None (ties never qualify)"""
    if long_confidence >= floor and long_confidence > short_confidence:
        return Direction.LONG
    if short_confidence >= floor and short_confidence > long_confidence:
        return Direction.SHORT
    return None


def build_levels(entry: float, atr: float, direction: Direction):
    """Stop at 2 ATR, take-profit levels at 1.5R / 2R / 3R"""
    risk = atr * STOP_ATR_MULTIPLE
    sign = direction.sign
    stop_loss = entry - sign * risk
    take_profits = tuple(entry + sign * risk * r for r in TAKE_PROFIT_R_MULTIPLES)
    return stop_loss, take_profits


def score_instrument(instrument: str, candles: Sequence[PriceBar]) -> Optional[Signal]:
    """
    Score one instrument and return a Signal, or None.

    Args:
        instrument: Ticker (e.g. "EURUSD")
        candles: Ascending price bars, at least 200 of them

    Returns:
        Signal when one direction scores >= 75 and strictly beats the other
    """
    if len(candles) < TREND_LOOKBACK:
        logger.info(f"{instrument}: insufficient data ({len(candles)}/{TREND_LOOKBACK} bars), skipping")
        return None

    indicators = calculate_indicator_set(candles)
    price = candles[-1].close
    score = score_indicators(price, indicators, has_volume_spike(candles))

    long_conf = score.long_confidence
    short_conf = score.short_confidence
    direction = select_direction(long_conf, short_conf)

    if direction is None:
        logger.debug(f"{instrument}: no valid setup - long {long_conf}%, short {short_conf}%")
        return None

    if indicators.atr <= 0:
        logger.info(f"{instrument}: zero ATR, cannot place a stop - skipping")
        return None

    confidence = long_conf if direction is Direction.LONG else short_conf
    stop_loss, take_profits = build_levels(price, indicators.atr, direction)
    risk_reward = abs(take_profits[0] - price) / abs(price - stop_loss)

    signal = Signal(
        instrument=instrument,
        direction=direction,
        confidence=confidence,
        entry_price=price,
        stop_loss=stop_loss,
        take_profits=take_profits,
        rationale=" | ".join(score.fired),
        priority=get_tier_weight(instrument) + confidence,
        expected_profit=risk_reward * (confidence / 100),
        risk_reward_ratio=risk_reward,
        indicators=indicators,
    )
    logger.info(
        f"{instrument}: {direction.value.upper()} signal at {confidence}% confidence "
        f"(RR {risk_reward:.2f}) - {signal.rationale}"
    )
    return signal
