"""
Indicator library: pure functions over candle / price sequences.

Every function returns a float64 numpy array with the same length as its
input, index-aligned so that value ``i`` only uses data up to candle ``i``.
Warm-up prefixes are filled with ``0.0`` (never NaN), and any zero
denominator yields ``0.0``.

Provides:
- SMA / EMA
- CMO (Chande Momentum Oscillator)
- CCI (Commodity Channel Index)
- Williams %R
- ADX (Wilder-smoothed DI, SMA-smoothed DX)
- Turtle / Donchian channel
- True range and ATR
"""

from collections.abc import Mapping, Sequence
from typing import Any, NamedTuple

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

# Candle input: a DataFrame or any mapping exposing high/low/close columns
CandleData = pd.DataFrame | Mapping[str, Any]


class TurtleChannel(NamedTuple):
    """Donchian channel bands."""

    upper: np.ndarray
    lower: np.ndarray


# =============================================================================
# Helpers
# =============================================================================


def _as_array(data: Sequence[float] | np.ndarray | pd.Series) -> np.ndarray:
    return np.asarray(data, dtype=np.float64)


def _hlc(candles: CandleData) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    return (
        _as_array(candles["high"]),
        _as_array(candles["low"]),
        _as_array(candles["close"]),
    )


def _safe_divide(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """Element-wise division that yields 0 wherever the denominator is 0."""
    return np.divide(
        numerator,
        denominator,
        out=np.zeros_like(numerator, dtype=np.float64),
        where=denominator != 0,
    )


def _trailing_windows(values: np.ndarray, period: int) -> np.ndarray:
    """Windows of ``period`` samples ending at indices ``period .. n-1``."""
    return sliding_window_view(values, period)[1:]


def _has_full_window(n: int, period: int) -> bool:
    return period > 0 and n > period


def wilder_smooth(data: np.ndarray, period: int) -> np.ndarray:
    """Wilder running sum: seed = sum of first ``period`` values, then prev - prev/period + new."""
    values = _as_array(data)
    out = np.zeros(len(values))
    if period <= 0 or len(values) < period:
        return out
    out[period - 1] = values[:period].sum()
    for i in range(period, len(values)):
        out[i] = out[i - 1] - out[i - 1] / period + values[i]
    return out


# =============================================================================
# Moving Averages
# =============================================================================


def sma(data: Sequence[float] | np.ndarray, period: int) -> np.ndarray:
    """Simple moving average; zeros before index ``period - 1``."""
    values = _as_array(data)
    out = np.zeros(len(values))
    if period <= 0 or len(values) < period:
        return out
    out[period - 1:] = sliding_window_view(values, period).mean(axis=1)
    return out


def ema(data: Sequence[float] | np.ndarray, period: int) -> np.ndarray:
    """Exponential moving average seeded from the first sample, factor 2/(period+1)."""
    values = _as_array(data)
    if period <= 0 or len(values) == 0:
        return np.zeros(len(values))
    return pd.Series(values).ewm(span=period, adjust=False).mean().to_numpy()


# =============================================================================
# Oscillators
# =============================================================================


def cmo(closes: Sequence[float] | np.ndarray, period: int) -> np.ndarray:
    """Chande Momentum Oscillator in [-100, 100] over ``period`` successive deltas."""
    values = _as_array(closes)
    out = np.zeros(len(values))
    if not _has_full_window(len(values), period):
        return out

    deltas = np.diff(values, prepend=values[0])
    gains = _trailing_windows(np.where(deltas > 0, deltas, 0.0), period).sum(axis=1)
    losses = _trailing_windows(np.where(deltas < 0, -deltas, 0.0), period).sum(axis=1)

    out[period:] = _safe_divide(gains - losses, gains + losses) * 100
    return out


def cci(candles: CandleData, period: int) -> np.ndarray:
    """Commodity Channel Index from typical price, its SMA and mean absolute deviation."""
    high, low, close = _hlc(candles)
    typical = (high + low + close) / 3
    out = np.zeros(len(typical))
    if not _has_full_window(len(typical), period):
        return out

    centre = sma(typical, period)[period:]
    windows = _trailing_windows(typical, period)
    mean_dev = np.abs(windows - centre[:, None]).mean(axis=1)

    out[period:] = _safe_divide(typical[period:] - centre, 0.015 * mean_dev)
    return out


def williams_r(candles: CandleData, period: int) -> np.ndarray:
    """
    Williams %R over a trailing window of ``period`` candles.

    Returns 0 (not a boundary value) when the window's high-low range is 0.
    """
    high, low, close = _hlc(candles)
    out = np.zeros(len(close))
    if not _has_full_window(len(close), period):
        return out

    highest = _trailing_windows(high, period).max(axis=1)
    lowest = _trailing_windows(low, period).min(axis=1)

    out[period:] = _safe_divide(close[period:] - highest, highest - lowest) * 100
    return out


def adx(candles: CandleData, period: int) -> np.ndarray:
    """
    Average Directional Index.

    DI lines use Wilder smoothing; ADX itself is a plain SMA of DX over
    ``period``.
    All zeros when fewer than ``2 * period`` candles are available.
    """
    high, low, close = _hlc(candles)
    n = len(close)
    if period <= 0 or n < period * 2:
        return np.zeros(n)

    up_move = np.zeros(n)
    down_move = np.zeros(n)
    up_move[1:] = high[1:] - high[:-1]
    down_move[1:] = low[:-1] - low[1:]

    dm_plus = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    dm_minus = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smoothed_tr = wilder_smooth(true_range(candles), period)
    di_plus = _safe_divide(wilder_smooth(dm_plus, period), smoothed_tr) * 100
    di_minus = _safe_divide(wilder_smooth(dm_minus, period), smoothed_tr) * 100

    dx = _safe_divide(np.abs(di_plus - di_minus), di_plus + di_minus) * 100
    return sma(dx, period)


# =============================================================================
# Channels & Volatility
# =============================================================================


def turtle_channels(candles: CandleData, period: int) -> TurtleChannel:
    """Trailing max(high) / min(low) over ``period`` candles (Donchian channel)."""
    high, low, _ = _hlc(candles)
    upper = np.zeros(len(high))
    lower = np.zeros(len(low))
    if _has_full_window(len(high), period):
        upper[period:] = _trailing_windows(high, period).max(axis=1)
        lower[period:] = _trailing_windows(low, period).min(axis=1)
    return TurtleChannel(upper=upper, lower=lower)


def true_range(candles: CandleData) -> np.ndarray:
    """True range per candle; index 0 has no previous close and is 0."""
    high, low, close = _hlc(candles)
    tr = np.zeros(len(close))
    if len(close) < 2:
        return tr
    prev_close = close[:-1]
    tr[1:] = np.maximum.reduce([
        high[1:] - low[1:],
        np.abs(high[1:] - prev_close),
        np.abs(low[1:] - prev_close),
    ])
    return tr


def atr(candles: CandleData, period: int) -> np.ndarray:
    """Wilder ATR seeded by the plain average of the first ``period`` true ranges."""
    tr = true_range(candles)
    out = np.zeros(len(tr))
    if period <= 0 or len(tr) < period:
        return out
    out[period - 1] = tr[:period].mean()
    for i in range(period, len(tr)):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out
