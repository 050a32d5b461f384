"""
Tests for backend/autotrader/indicator_calculator.py

Covers the pure indicator functions:
- calculate_rsi
- calculate_sma
- calculate_ema
- calculate_macd
- calculate_atr / true_ranges
- calculate_bollinger_bands
- calculate_indicator_set
"""

import pytest

from autotrader.indicator_calculator import (
    calculate_atr,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_indicator_set,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    true_ranges,
)
from autotrader.trading_engine.types import PriceBar


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def trending_up_prices():
    """250 prices trending upward."""
    return [1.1000 + i * 0.0005 for i in range(250)]


@pytest.fixture
def trending_down_prices():
    """250 prices trending downward."""
    return [1.3000 - i * 0.0005 for i in range(250)]


@pytest.fixture
def flat_prices():
    """50 flat prices (all the same)."""
    return [100.0] * 50


# ---------------------------------------------------------------------------
# calculate_rsi
# ---------------------------------------------------------------------------


class TestCalculateRSI:
    """Tests for calculate_rsi()"""

    def test_rsi_insufficient_data_returns_neutral(self):
        """Edge case: fewer than period+1 prices returns 50."""
        assert calculate_rsi([1.0] * 14, period=14) == 50.0

    def test_rsi_all_gains_returns_100(self, trending_up_prices):
        """Happy path: only gains in the window saturates at 100."""
        assert calculate_rsi(trending_up_prices) == 100.0

    def test_rsi_all_losses_returns_0(self, trending_down_prices):
        """Happy path: only losses in the window gives 0."""
        assert calculate_rsi(trending_down_prices) == pytest.approx(0.0)

    def test_rsi_flat_prices_is_neutral(self, flat_prices):
        """Edge case: no movement at all is neutral, not overbought."""
        assert calculate_rsi(flat_prices) == 50.0

    def test_rsi_known_ratio(self):
        """Happy path: gains twice the size of losses gives RS=2, RSI=66.67."""
        prices = [100.0]
        for i in range(14):
            prices.append(prices[-1] + (2.0 if i % 2 == 0 else -1.0))
        assert calculate_rsi(prices) == pytest.approx(100 - 100 / 3)

    def test_rsi_uses_only_trailing_window(self):
        """Edge case: history before the trailing window does not matter."""
        tail = [100.0 + i for i in range(15)]
        assert calculate_rsi([50.0, 10.0, 500.0] + tail) == calculate_rsi(tail)

    def test_rsi_is_deterministic(self, trending_up_prices):
        """Happy path: same input, same output."""
        prices = trending_up_prices[:100] + trending_up_prices[:100][::-1]
        assert calculate_rsi(prices) == calculate_rsi(list(prices))


# ---------------------------------------------------------------------------
# calculate_sma / calculate_ema
# ---------------------------------------------------------------------------


class TestCalculateSMA:
    """Tests for calculate_sma()"""

    def test_sma_trailing_window(self):
        """Happy path: mean of the last `period` values."""
        assert calculate_sma([1.0, 2.0, 3.0, 4.0, 5.0], 3) == pytest.approx(4.0)

    def test_sma_insufficient_returns_latest(self):
        """Edge case: too few values returns the latest price."""
        assert calculate_sma([1.0, 2.0], 5) == 2.0


class TestCalculateEMA:
    """Tests for calculate_ema()"""

    def test_ema_seeded_with_sma(self):
        """Happy path: SMA seed (2.0) then two recurrence steps at k=0.5."""
        assert calculate_ema([1.0, 2.0, 3.0, 4.0, 5.0], 3) == pytest.approx(4.0)

    def test_ema_exact_period_is_sma(self):
        """Edge case: exactly `period` values returns the seed SMA."""
        assert calculate_ema([1.0, 2.0, 3.0], 3) == pytest.approx(2.0)

    def test_ema_insufficient_returns_latest(self):
        """Edge case: fewer than `period` values returns the latest price unchanged."""
        assert calculate_ema([1.0, 2.0, 7.5], 20) == 7.5

    def test_ema_constant_series(self, flat_prices):
        """Edge case: EMA of a constant series is that constant."""
        assert calculate_ema(flat_prices, 20) == pytest.approx(100.0)

    def test_ema_ordering_on_uptrend(self, trending_up_prices):
        """Happy path: in a steady uptrend the faster EMA sits above the slower ones."""
        ema20 = calculate_ema(trending_up_prices, 20)
        ema50 = calculate_ema(trending_up_prices, 50)
        ema200 = calculate_ema(trending_up_prices, 200)
        assert ema20 > ema50 > ema200


# ---------------------------------------------------------------------------
# calculate_macd
# ---------------------------------------------------------------------------


class TestCalculateMACD:
    """Tests for calculate_macd()"""

    def test_macd_flat_prices_is_zero(self, flat_prices):
        """Edge case: no trend means a zero line, signal and histogram."""
        result = calculate_macd(flat_prices)
        assert result.value == pytest.approx(0.0)
        assert result.signal == pytest.approx(0.0)
        assert result.histogram == pytest.approx(0.0)

    def test_macd_short_series_has_no_histogram(self):
        """Edge case: with too little history the signal equals the line."""
        result = calculate_macd([1.0, 1.1, 1.2, 1.3])
        assert result.signal == result.value
        assert result.histogram == 0.0

    def test_macd_positive_on_uptrend(self, trending_up_prices):
        """Happy path: EMA12 above EMA26 in an uptrend."""
        assert calculate_macd(trending_up_prices).value > 0

    def test_macd_negative_on_downtrend(self, trending_down_prices):
        """Happy path: EMA12 below EMA26 in a downtrend."""
        assert calculate_macd(trending_down_prices).value < 0

    def test_macd_histogram_is_line_minus_signal(self, trending_up_prices):
        """Happy path: histogram = line - signal."""
        prices = trending_up_prices[:150] + [trending_up_prices[149] - i * 0.001 for i in range(1, 30)]
        result = calculate_macd(prices)
        assert result.histogram == pytest.approx(result.value - result.signal)

    def test_macd_is_deterministic(self, trending_up_prices):
        """Happy path: same input, same output."""
        assert calculate_macd(trending_up_prices) == calculate_macd(list(trending_up_prices))


# ---------------------------------------------------------------------------
# calculate_atr
# ---------------------------------------------------------------------------


class TestCalculateATR:
    """Tests for calculate_atr() and true_ranges()"""

    def test_atr_constant_range(self, make_bars):
        """Happy path: flat closes with a 0.5 spread give a true range of 1.0."""
        bars = make_bars([100.0] * 30, spread=0.5)
        assert calculate_atr(bars) == pytest.approx(1.0)

    def test_atr_insufficient_data_returns_zero(self, make_bars):
        """Edge case: fewer than period+1 bars returns 0."""
        assert calculate_atr(make_bars([100.0] * 14, spread=0.5)) == 0.0

    def test_true_range_uses_previous_close_gap(self, make_bars):
        """Happy path: a gap from the previous close widens the true range."""
        bars = make_bars([100.0, 100.0], spread=0.5)
        gapped = PriceBar(
            timestamp=bars[1].timestamp, open=105.0, high=105.5, low=104.5, close=105.0, volume=1.0,
        )
        assert true_ranges([bars[0], gapped]) == [pytest.approx(5.5)]

    def test_atr_averages_trailing_ranges_only(self, make_bars):
        """Edge case: old volatility outside the window is ignored."""
        volatile = make_bars([100.0] * 20, spread=5.0)
        calm = make_bars([100.0] * 16, spread=0.5)
        assert calculate_atr(volatile + calm) == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# calculate_bollinger_bands
# ---------------------------------------------------------------------------


class TestCalculateBollingerBands:
    """Tests for calculate_bollinger_bands()"""

    def test_bollinger_known_values(self):
        """Happy path: alternating 1/3 has mean 2 and population std 1."""
        bands = calculate_bollinger_bands([1.0, 3.0] * 10)
        assert bands.middle == pytest.approx(2.0)
        assert bands.upper == pytest.approx(4.0)
        assert bands.lower == pytest.approx(0.0)

    def test_bollinger_insufficient_data_is_flat(self):
        """Edge case: too few prices gives a flat band at the latest price."""
        bands = calculate_bollinger_bands([1.0, 2.0, 3.0])
        assert bands.upper == bands.middle == bands.lower == 3.0

    def test_bollinger_constant_series_collapses(self, flat_prices):
        """Edge case: zero deviation collapses the bands onto the mean."""
        bands = calculate_bollinger_bands(flat_prices)
        assert bands.upper == pytest.approx(100.0)
        assert bands.lower == pytest.approx(100.0)


# ---------------------------------------------------------------------------
# calculate_indicator_set
# ---------------------------------------------------------------------------


class TestCalculateIndicatorSet:
    """Tests for calculate_indicator_set()"""

    def test_indicator_set_on_uptrend(self, make_bars, trending_up_prices):
        """Happy path: strictly rising closes give stacked EMAs and saturated RSI."""
        indicators = calculate_indicator_set(make_bars(trending_up_prices, spread=0.0002))
        assert indicators.ema20 > indicators.ema50 > indicators.ema200
        assert indicators.rsi == 100.0
        assert indicators.atr > 0

    def test_indicator_set_is_reproducible(self, make_bars, trending_up_prices):
        """Happy path: the snapshot embedded in a signal can be recomputed exactly."""
        bars = make_bars(trending_up_prices)
        assert calculate_indicator_set(bars) == calculate_indicator_set(list(bars))
