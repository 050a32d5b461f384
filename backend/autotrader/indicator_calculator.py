"""
Indicator Calculator

Pure, stateless indicator functions over a price series in ascending
chronological order. Every function is a deterministic function of its
inputs so an IndicatorSet embedded in a Signal can be reproduced exactly.

Supports:
- RSI (Relative Strength Index)
- EMA / SMA (Exponential / Simple Moving Average)
- MACD (Moving Average Convergence Divergence)
- ATR (Average True Range)
- Bollinger Bands

Degenerate inputs (too few points) return defined neutral values instead of
raising: RSI -> 50, EMA/SMA -> latest price, ATR -> 0, Bollinger -> flat band.
"""

import math
from typing import List, Sequence

from autotrader.trading_engine.types import BollingerBands, IndicatorSet, MACDResult, PriceBar


def calculate_rsi(prices: Sequence[float], period: int = 14) -> float:
    """Calculate RSI from the average gain/loss of the trailing `period` differences"""
    if len(prices) < period + 1:
        return 50.0

    window = prices[-(period + 1):]
    changes = [window[i] - window[i - 1] for i in range(1, len(window))]

    avg_gain = sum(change for change in changes if change > 0) / period
    avg_loss = sum(-change for change in changes if change < 0) / period

    if avg_loss == 0:
        # Flat window is neutral, pure gains saturate
        return 100.0 if avg_gain > 0 else 50.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def calculate_sma(prices: Sequence[float], period: int) -> float:
    """Calculate SMA (Simple Moving Average)"""
    if len(prices) < period:
        return float(prices[-1])
    return sum(prices[-period:]) / period


def calculate_ema(prices: Sequence[float], period: int) -> float:
    """Calculate EMA seeded with the SMA of the first `period` values"""
    if len(prices) < period:
        return float(prices[-1])

    multiplier = 2 / (period + 1)
    ema = sum(prices[:period]) / period

    for price in prices[period:]:
        ema = (price - ema) * multiplier + ema

    return ema


def _macd_line(prices: Sequence[float]) -> float:
    return calculate_ema(prices, 12) - calculate_ema(prices, 26)


def calculate_macd(prices: Sequence[float], signal_period: int = 9) -> MACDResult:
    """
    Calculate MACD (12/26) with an approximated signal line.

    The signal line is an EMA9 over a short synthetic series: the MACD line
    at each of the previous `signal_period` bars followed by the current
    value. This approximates a full historical EMA of the MACD line and is
    kept as-is because the scorer thresholds were tuned against it.

    Returns:
        MACDResult(value, signal, histogram)
    """
    macd_line = _macd_line(prices)

    if len(prices) <= signal_period:
        return MACDResult(value=macd_line, signal=macd_line, histogram=0.0)

    history = [_macd_line(prices[:len(prices) - offset]) for offset in range(signal_period, 0, -1)]
    history.append(macd_line)

    signal_line = calculate_ema(history, signal_period)
    return MACDResult(value=macd_line, signal=signal_line, histogram=macd_line - signal_line)


def true_ranges(candles: Sequence[PriceBar]) -> List[float]:
    """Wilder true range for every bar after the first"""
    ranges = []
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        ranges.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return ranges


def calculate_atr(candles: Sequence[PriceBar], period: int = 14) -> float:
    """Calculate ATR as the simple mean of the trailing `period` true ranges"""
    if len(candles) < period + 1:
        return 0.0

    ranges = true_ranges(candles[-(period + 1):])
    return sum(ranges) / period


def calculate_bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0
) -> BollingerBands:
    """
    Calculate Bollinger Bands (SMA +/- std_dev population standard deviations)

    Returns:
        BollingerBands(upper, middle, lower)
    """
    if len(prices) < period:
        latest = float(prices[-1])
        return BollingerBands(upper=latest, middle=latest, lower=latest)

    recent_prices = prices[-period:]
    middle = sum(recent_prices) / period
    variance = sum((p - middle) ** 2 for p in recent_prices) / period
    std = math.sqrt(variance)

    return BollingerBands(upper=middle + std_dev * std, middle=middle, lower=middle - std_dev * std)


def calculate_indicator_set(candles: Sequence[PriceBar]) -> IndicatorSet:
    """Snapshot of every indicator the scorer uses, computed from one bar sequence"""
    closes = [c.close for c in candles]
    return IndicatorSet(
        rsi=calculate_rsi(closes),
        macd=calculate_macd(closes),
        ema20=calculate_ema(closes, 20),
        ema50=calculate_ema(closes, 50),
        ema200=calculate_ema(closes, 200),
        atr=calculate_atr(candles),
        bollinger=calculate_bollinger_bands(closes),
    )
