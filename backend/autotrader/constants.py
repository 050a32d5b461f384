"""
Engine Constants

Centralized constants for the instrument universe, per-instrument pip
configuration, timeframes and the thresholds the scorer relies on.
"""

from typing import Dict, List, Tuple

# Instrument universe, highest priority tier first.
# Each tier is (tier weight, instruments). Discovery walks tiers in order.
INSTRUMENT_TIERS: List[Tuple[int, List[str]]] = [
    (100, ["XAUUSD", "EURUSD", "GBPUSD", "USDJPY"]),
    (75, ["GBPJPY", "EURJPY", "AUDUSD", "USDCHF", "XAGUSD"]),
    (50, ["USDCAD", "NZDUSD", "EURGBP", "EURAUD", "AUDJPY"]),
]

DEFAULT_TIER_WEIGHT = 50

# Per-instrument pip configuration
# pip_value: account currency per pip per standard lot
# pip_multiplier: price units -> pips
PAIR_CONFIG: Dict[str, Dict[str, float]] = {
    "XAUUSD": {"pip_value": 1.0, "pip_multiplier": 10},
    "XAGUSD": {"pip_value": 50.0, "pip_multiplier": 100},
    "EURUSD": {"pip_value": 10.0, "pip_multiplier": 10000},
    "GBPUSD": {"pip_value": 10.0, "pip_multiplier": 10000},
    "AUDUSD": {"pip_value": 10.0, "pip_multiplier": 10000},
    "NZDUSD": {"pip_value": 10.0, "pip_multiplier": 10000},
    "EURGBP": {"pip_value": 10.0, "pip_multiplier": 10000},
    "EURAUD": {"pip_value": 10.0, "pip_multiplier": 10000},
    "USDCHF": {"pip_value": 10.0, "pip_multiplier": 10000},
    "USDCAD": {"pip_value": 10.0, "pip_multiplier": 10000},
    "USDJPY": {"pip_value": 7.0, "pip_multiplier": 100},
    "GBPJPY": {"pip_value": 7.0, "pip_multiplier": 100},
    "EURJPY": {"pip_value": 7.0, "pip_multiplier": 100},
    "AUDJPY": {"pip_value": 7.0, "pip_multiplier": 100},
}

DEFAULT_PIP_VALUE = 10.0
DEFAULT_PIP_MULTIPLIER = 10000

# Candle timeframes accepted by the gateway, with legacy aliases
TIMEFRAME_ALIASES: Dict[str, str] = {
    "m1": "1m",
    "m5": "5m",
    "m15": "15m",
    "m30": "30m",
    "h1": "1h",
    "h4": "4h",
    "d1": "1d",
}

# Seconds between scheduled cycles for each timeframe
TIMEFRAME_INTERVALS: Dict[str, int] = {
    "1m": 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "30m": 30 * 60,
    "1h": 60 * 60,
    "4h": 4 * 60 * 60,
    "1d": 24 * 60 * 60,
}

# Account balance ceilings -> max concurrent open positions
CONCURRENCY_TABLE: List[Tuple[float, int]] = [
    (1000.0, 2),
    (5000.0, 3),
    (10000.0, 5),
    (50000.0, 8),
]
MAX_CONCURRENCY = 10

# Lookbacks
TREND_LOOKBACK = 200  # EMA200 long trend filter
CLOSE_ANALYSIS_MIN_BARS = 50
VOLUME_LOOKBACK = 20

# Scorer thresholds
CONFIDENCE_FLOOR = 75
VOLUME_SPIKE_MULTIPLIER = 1.5
STOP_ATR_MULTIPLE = 2.0
TAKE_PROFIT_R_MULTIPLES = (1.5, 2.0, 3.0)


def normalize_timeframe(timeframe: str) -> str:
    """Map legacy aliases (m15, h1, ...) onto gateway timeframes (15m, 1h, ...)"""
    tf = timeframe.strip().lower()
    return TIMEFRAME_ALIASES.get(tf, tf)


def get_tier_weight(instrument: str) -> int:
    for weight, instruments in INSTRUMENT_TIERS:
        if instrument in instruments:
            return weight
    return DEFAULT_TIER_WEIGHT


def get_pair_config(instrument: str) -> Dict[str, float]:
    """Pip configuration for an instrument, guessing from the symbol when unknown."""
    config = PAIR_CONFIG.get(instrument)
    if config:
        return config
    if "JPY" in instrument:
        return {"pip_value": 7.0, "pip_multiplier": 100}
    return {"pip_value": DEFAULT_PIP_VALUE, "pip_multiplier": DEFAULT_PIP_MULTIPLIER}
