"""Tests for the indicator library."""

import numpy as np
import pytest

from dca_backtester.core import indicators
from tests.conftest import make_candles, make_flat_candles, make_rising_candles


class TestMovingAverages:

    def test_sma_values_and_warmup(self):
        result = indicators.sma([1, 2, 3, 4, 5], 3)
        np.testing.assert_allclose(result, [0, 0, 2, 3, 4])

    def test_sma_period_longer_than_input(self):
        assert indicators.sma([1, 2], 5).tolist() == [0.0, 0.0]

    def test_ema_seeded_with_first_sample(self):
        result = indicators.ema([10.0, 20.0, 30.0], 3)
        # alpha = 2 / (3 + 1)
        assert result[0] == 10.0
        assert result[1] == pytest.approx(15.0)
        assert result[2] == pytest.approx(22.5)

    def test_ema_constant_series(self):
        np.testing.assert_allclose(indicators.ema([2.0] * 5, 3), [2.0] * 5)

    def test_empty_inputs(self):
        assert len(indicators.sma([], 3)) == 0
        assert len(indicators.ema([], 3)) == 0
        assert len(indicators.cmo([], 3)) == 0


class TestOscillators:

    @pytest.mark.parametrize("period", [5, 9, 14, 20])
    def test_lengths_and_warmup_zeros(self, period):
        candles = make_candles(n=120)
        closes = candles["close"].to_numpy()
        for values in (
            indicators.cmo(closes, period),
            indicators.cci(candles, period),
            indicators.williams_r(candles, period),
        ):
            assert len(values) == len(candles)
            assert np.all(values[:period] == 0)
            assert np.all(np.isfinite(values))

    def test_flat_series_is_zero(self):
        candles = make_flat_candles(n=100)
        assert np.all(indicators.cci(candles, 20) == 0)
        assert np.all(indicators.cmo(candles["close"], 9) == 0)
        assert np.all(indicators.williams_r(candles, 14) == 0)
        assert np.all(indicators.adx(candles, 14) == 0)

    def test_cmo_monotonic_extremes(self):
        rising = np.arange(1.0, 31.0)
        np.testing.assert_allclose(indicators.cmo(rising, 9)[9:], 100.0)
        np.testing.assert_allclose(indicators.cmo(rising[::-1], 9)[9:], -100.0)

    def test_williams_r_bounds(self):
        candles = make_candles(n=200, volatility=0.03)
        values = indicators.williams_r(candles, 14)[14:]
        assert values.min() >= -100.0
        assert values.max() <= 0.0

    def test_williams_r_close_at_lowest_low(self):
        candles = {
            "high": np.array([10.0, 9.0, 8.0, 7.0]),
            "low": np.array([9.0, 8.0, 7.0, 5.0]),
            "close": np.array([9.5, 8.5, 7.5, 5.0]),
        }
        assert indicators.williams_r(candles, 2)[3] == pytest.approx(-100.0)

    def test_cci_positive_in_uptrend(self):
        candles = make_rising_candles(n=80)
        assert np.all(indicators.cci(candles, 20)[20:] > 80)


class TestAdx:

    def test_short_input_is_all_zero(self):
        candles = make_candles(n=20)
        assert np.all(indicators.adx(candles, 14) == 0)

    def test_trending_series_has_positive_adx(self):
        candles = make_rising_candles(n=120)
        values = indicators.adx(candles, 14)
        assert len(values) == 120
        assert values[-1] > 0
        assert np.all(values <= 100)


class TestChannels:

    def test_turtle_channels_track_window_extremes(self):
        candles = make_candles(n=60)
        channel = indicators.turtle_channels(candles, 10)
        highs = candles["high"].to_numpy()
        lows = candles["low"].to_numpy()

        assert np.all(channel.upper[:10] == 0)
        for i in range(10, 60):
            assert channel.upper[i] == highs[i - 9:i + 1].max()
            assert channel.lower[i] == lows[i - 9:i + 1].min()

    def test_true_range_first_value_zero(self):
        candles = make_candles(n=10)
        tr = indicators.true_range(candles)
        assert tr[0] == 0
        assert np.all(tr[1:] > 0)

    def test_atr_warmup_and_positive(self):
        candles = make_candles(n=50)
        values = indicators.atr(candles, 14)
        assert np.all(values[:13] == 0)
        assert np.all(values[13:] > 0)

    def test_non_positive_period_returns_zeros(self):
        candles = make_candles(n=30)
        assert np.all(indicators.cci(candles, 0) == 0)
        assert np.all(indicators.turtle_channels(candles, -1).upper == 0)
