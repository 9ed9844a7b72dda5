"""Shared test fixtures and helpers for DCA backtester tests."""

from collections.abc import Sequence

import numpy as np
import pandas as pd
import pytest

from dca_backtester.core.market_simulator import CANDLE_INTERVAL_MS
from dca_backtester.engine.models import StrategyConfig
from dca_backtester.logging import setup_logging

START_TIME = 1_704_067_200_000  # 2024-01-01 00:00 UTC


def _frame(
    opens: Sequence[float],
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> pd.DataFrame:
    n = len(closes)
    return pd.DataFrame({
        "time": START_TIME + np.arange(n, dtype=np.int64) * CANDLE_INTERVAL_MS,
        "open": np.asarray(opens, dtype=float),
        "high": np.asarray(highs, dtype=float),
        "low": np.asarray(lows, dtype=float),
        "close": np.asarray(closes, dtype=float),
        "volume": np.full(n, 1000.0),
    })


def make_candles(
    n: int = 300,
    start_price: float = 100.0,
    volatility: float = 0.02,
    seed: int = 42,
) -> pd.DataFrame:
    """Generate a random-walk OHLCV frame with wicks."""
    rng = np.random.RandomState(seed)
    closes = [start_price]
    for _ in range(n - 1):
        closes.append(closes[-1] * (1 + rng.normal(0, volatility)))

    opens = [closes[0]] + closes[:-1]
    highs, lows = [], []
    for o, c in zip(opens, closes):
        highs.append(max(o, c) * (1 + abs(rng.normal(0, volatility))))
        lows.append(min(o, c) * (1 - abs(rng.normal(0, volatility))))
    return _frame(opens, highs, lows, closes)


def make_flat_candles(n: int = 200, price: float = 100.0) -> pd.DataFrame:
    """Zero-volatility, zero-trend candles."""
    flat = [price] * n
    return _frame(flat, flat, flat, flat)


def make_rising_candles(
    n: int = 200,
    start_price: float = 100.0,
    step: float = 0.5,
    dip_index: int | None = None,
    dip_depth: float = 0.05,
) -> pd.DataFrame:
    """
    Strictly rising closes with tiny wicks.

    ``dip_index`` turns one candle into a flat-bodied candle with a long
    lower wick (``dip_depth`` below its body), which is an entry signal.
    """
    closes = [start_price + step * i for i in range(n)]
    opens = [closes[0] - step] + closes[:-1]
    highs = [c + 0.1 for c in closes]
    lows = [o - 0.1 for o in opens]

    if dip_index is not None:
        body = closes[dip_index]
        opens[dip_index] = body
        highs[dip_index] = body + 0.1
        lows[dip_index] = body * (1 - dip_depth)
    return _frame(opens, highs, lows, closes)


def make_dca_ladder_candles(
    base_fill: float,
    steps: Sequence[float] = (6.0, 15.0, 28.0),
    entry_index: int = 60,
    n: int = 100,
    price: float = 100.0,
    entry_close: float = 98.0,
    dip_low: float = 94.0,
) -> pd.DataFrame:
    """
    Flat market, a wick-dip entry, then one candle per ladder step whose low
    sits exactly on ``base_fill * (1 - step / 100)``, then a recovery above
    ``price`` and a flat tail.
    """
    opens = [price] * entry_index
    highs = [price] * entry_index
    lows = [price] * entry_index
    closes = [price] * entry_index

    # Entry candle: long lower wick, closes below the flat high
    opens.append(price)
    highs.append(price)
    lows.append(dip_low)
    closes.append(entry_close)

    for step in steps:
        low = base_fill * (1 - step / 100)
        prev_close = closes[-1]
        close = low * 1.01
        opens.append(prev_close)
        highs.append(max(prev_close, close))
        lows.append(low)
        closes.append(close)

    # Recovery candle
    prev_close = closes[-1]
    opens.append(prev_close)
    highs.append(price + 1)
    lows.append(prev_close)
    closes.append(price)

    tail = n - len(closes)
    opens += [price] * tail
    highs += [price] * tail
    lows += [price] * tail
    closes += [price] * tail
    return _frame(opens, highs, lows, closes)


def make_stalled_candles(
    n: int = 100,
    entry_index: int = 60,
    price: float = 100.0,
    stall_price: float = 95.5,
) -> pd.DataFrame:
    """A wick-dip entry followed by a flat market that never reaches the exit."""
    opens = [price] * entry_index + [price] + [stall_price] * (n - entry_index - 1)
    highs = [price] * entry_index + [price] + [stall_price] * (n - entry_index - 1)
    lows = [price] * entry_index + [94.0] + [stall_price] * (n - entry_index - 1)
    closes = [price] * entry_index + [98.0] + [stall_price] * (n - entry_index - 1)
    return _frame(opens, highs, lows, closes)


def candles_payload(candles: pd.DataFrame) -> list[dict]:
    """JSON-safe candle rows for API requests."""
    return [
        {
            "time": int(row.time),
            "open": float(row.open),
            "high": float(row.high),
            "low": float(row.low),
            "close": float(row.close),
            "volume": float(row.volume),
        }
        for row in candles.itertuples(index=False)
    ]


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    setup_logging(log_level="WARNING")


@pytest.fixture
def default_config():
    return StrategyConfig()


@pytest.fixture
def open_config():
    """Defaults without the smart-entry gate."""
    return StrategyConfig(smart_entry=False)


@pytest.fixture
def candles_300():
    return make_candles(n=300)
