"""Tests for technical indicators."""

import math

import numpy as np
import pytest

from signal_engine.indicators import (
    atr,
    bollinger,
    ema,
    highest,
    lowest,
    percentile_rank,
    rsi,
    sma,
    zscore,
)


class TestEMA:
    """Tests for EMA calculation."""

    def test_ema_basic(self):
        """Test basic EMA calculation."""
        result = ema(list(range(1, 11)), 5)

        # First 4 values should be NaN
        assert math.isnan(result[0])
        assert math.isnan(result[3])

        # 5th value is the SMA of the first 5 = 3
        assert result[4] == pytest.approx(3.0)
        assert result[5] > result[4]

    def test_ema_insufficient_data(self):
        result = ema([100, 101, 102], 10)

        assert len(result) == 3
        assert all(math.isnan(v) for v in result)

    def test_ema_constant_series(self):
        result = ema([5.0] * 30, 10)
        assert result[-1] == pytest.approx(5.0)


class TestSMA:
    def test_sma_basic(self):
        result = sma([1, 2, 3, 4, 5], 3)

        assert math.isnan(result[1])
        assert list(result[2:]) == pytest.approx([2.0, 3.0, 4.0])


class TestRangeIndicators:
    def test_highest_lowest(self):
        values = [3, 1, 4, 1, 5, 9, 2, 6]
        assert highest(values, 3)[-1] == 9
        assert lowest(values, 3)[-1] == 2

    def test_atr_constant_range(self):
        highs = np.full(30, 11.0)
        lows = np.full(30, 9.0)
        closes = np.full(30, 10.0)
        result = atr(highs, lows, closes, 14)

        assert math.isnan(result[12])
        assert result[-1] == pytest.approx(2.0)


class TestRSI:
    def test_rsi_only_gains(self):
        assert rsi(list(range(1, 30)), 14)[-1] == pytest.approx(100.0)

    def test_rsi_only_losses(self):
        assert rsi(list(range(30, 1, -1)), 14)[-1] == pytest.approx(0.0)

    def test_rsi_flat(self):
        assert rsi([10.0] * 20, 14)[-1] == pytest.approx(50.0)

    def test_rsi_bounds(self):
        values = 100 + np.sin(np.linspace(0, 12, 80)) * 5
        result = rsi(values, 14)
        finite = result[~np.isnan(result)]
        assert np.all((finite >= 0) & (finite <= 100))


class TestBollinger:
    def test_flat_series_has_zero_width(self):
        upper, middle, lower = bollinger([10.0] * 25, 20, 2.0)

        assert upper[-1] == pytest.approx(10.0)
        assert middle[-1] == pytest.approx(10.0)
        assert lower[-1] == pytest.approx(10.0)

    def test_band_order(self):
        values = 100 + np.sin(np.linspace(0, 6, 50))
        upper, middle, lower = bollinger(values, 20, 2.0)
        assert upper[-1] > middle[-1] > lower[-1]


class TestStatistics:
    def test_zscore(self):
        assert zscore([1, 1, 1, 1], 4) == 0.0
        assert math.isnan(zscore([1, 2, 3], 4))
        assert zscore([0, 0, 0, 4], 4) == pytest.approx(math.sqrt(3))

    def test_percentile_rank(self):
        assert percentile_rank([1, 2, 3, 4], 2) == pytest.approx(0.5)
        assert percentile_rank([1, 2, float("nan"), 4], 4) == pytest.approx(1.0)
        assert math.isnan(percentile_rank([], 1))
