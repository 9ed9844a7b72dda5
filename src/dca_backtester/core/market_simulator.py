"""
Synthetic market data for backtesting the DCA grid strategy.

Generates 4h OHLCV candles that follow a per-asset yearly price path
(anchor table) with slow mean reversion, random noise, long wicks and
occasional flash crashes / pumps. Unknown symbols fall back to a generic
altcoin curve, so generation never fails.
"""

import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd

from dca_backtester.logging import get_logger

logger = get_logger(__name__)

CANDLE_INTERVAL_MS = 4 * 60 * 60 * 1000
CANDLE_COLUMNS = ("time", "open", "high", "low", "close", "volume")

# Generator tuning
TREND_PULL_DIVISOR = 200
VOLATILITY_RANGE = (0.02, 0.04)
WICK_FACTOR = 3
SPIKE_PROBABILITY = 0.002
FLASH_CRASH_FACTOR = 0.85
PUMP_FACTOR = 1.15
MIN_PRICE = 1e-7
MAX_VOLUME = 1_000_000
FALLBACK_START_PRICE = 10.0


# =============================================================================
# Reference Data (read-only)
# =============================================================================

COIN_LIST: tuple[str, ...] = (
    "AAVE", "ADA", "AGI", "AIOZ", "ANKR", "ASTR", "ATOM", "AVAX", "AXS", "BAT",
    "BCH", "CELO", "CFX", "CHR", "COMP", "CRO", "CRV", "CTC", "CTK", "CVC",
    "DASH", "DGB", "DOT", "EGLD", "ENS", "ETC", "FIL", "FLOW", "FLR", "GLM",
    "GRT", "HBAR", "ICP", "ICX", "IMX", "INJ", "IOTA", "JTO", "KAS", "KNC",
    "KSM", "LDO", "LINK", "LRC", "MANA", "MNT", "MOVR", "NEO", "NMR", "ONDO",
    "ONG", "POL", "RVN", "SAND", "SHIB1000", "SLP", "STORJ", "SUPER", "SUSHI",
    "STX", "SXP", "TAO", "THETA", "TON", "TWT", "UMA", "UNI", "VET", "WOO",
    "XLM", "XRP", "XTZ", "YFI", "ZEC", "ZIL",
)

# (year, zero-based month)
DEFAULT_LAUNCH: tuple[int, int] = (2018, 0)

LAUNCH_DATES: Mapping[str, tuple[int, int]] = MappingProxyType({
    "BTC": (2009, 0), "ETH": (2015, 7), "LTC": (2011, 9), "XRP": (2012, 0),
    "ADA": (2017, 9), "SOL": (2020, 3), "AVAX": (2020, 8), "DOT": (2020, 7),
    "MATIC": (2019, 3), "LINK": (2017, 8), "ATOM": (2019, 2), "UNI": (2020, 8),
    "AAVE": (2020, 9), "SNX": (2019, 0), "SAND": (2020, 7), "NEAR": (2020, 9),
    "ARB": (2023, 2), "OP": (2022, 4), "SUI": (2023, 4), "APT": (2022, 9),
    "JTO": (2023, 11), "ONDO": (2024, 0), "TIA": (2023, 9), "PEPE": (2023, 3),
    "TON": (2021, 0),
})

PRICE_ANCHORS: Mapping[str, Mapping[int, float]] = MappingProxyType({
    "BTC": MappingProxyType({2020: 10000, 2021: 60000, 2022: 16000, 2023: 30000, 2024: 70000}),
    "ETH": MappingProxyType({2020: 300, 2021: 4500, 2022: 1000, 2023: 2000, 2024: 3500}),
    "SOL": MappingProxyType({2020: 1, 2021: 250, 2022: 9, 2023: 60, 2024: 150}),
    "ADA": MappingProxyType({2020: 0.05, 2021: 3.0, 2022: 0.25, 2023: 0.5, 2024: 0.7}),
    "DOT": MappingProxyType({2020: 3, 2021: 50, 2022: 4, 2023: 7, 2024: 9}),
    "AVAX": MappingProxyType({2020: 3, 2021: 130, 2022: 10, 2023: 30, 2024: 50}),
    "LINK": MappingProxyType({2020: 4, 2021: 50, 2022: 5, 2023: 15, 2024: 18}),
})

# Pump / dump / recovery / growth
GENERIC_ANCHORS: Mapping[int, float] = MappingProxyType(
    {2020: 10, 2021: 150, 2022: 15, 2023: 30, 2024: 60}
)
FALLBACK_ANCHOR_YEAR = 2024

MICRO_PRICED_ASSETS = frozenset({"SHIB1000", "PEPE", "BONK"})
MICRO_PRICE_DIVISOR = 10_000


def launch_date(symbol: str) -> tuple[int, int]:
    """Launch (year, zero-based month) for a symbol, or the generic default."""
    return LAUNCH_DATES.get(symbol, DEFAULT_LAUNCH)


def asset_anchors(symbol: str) -> Mapping[int, float]:
    """Year -> price anchors for a symbol, falling back to the generic curve."""
    anchors = PRICE_ANCHORS.get(symbol)
    if anchors is not None:
        return anchors
    if symbol in MICRO_PRICED_ASSETS:
        return MappingProxyType({y: p / MICRO_PRICE_DIVISOR for y, p in GENERIC_ANCHORS.items()})
    return GENERIC_ANCHORS


# =============================================================================
# Candle
# =============================================================================


@dataclass(frozen=True)
class Candle:
    """Single OHLCV candle. ``time`` is a millisecond UTC timestamp."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Candle":
        return cls(
            time=int(row["time"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume", 0.0)),
        )

    def is_valid(self) -> bool:
        """OHLC envelope: low <= min(open, close), high >= max(open, close)."""
        return self.low <= min(self.open, self.close) and self.high >= max(self.open, self.close)


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Build a candle DataFrame from ``Candle`` records."""
    return pd.DataFrame([asdict(c) for c in candles], columns=list(CANDLE_COLUMNS))


def empty_candles() -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype="float64") for col in CANDLE_COLUMNS})


# =============================================================================
# Market Simulator
# =============================================================================


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class MarketSimulator:
    """
    Generates synthetic 4h candles per asset.

    Usage:
        simulator = MarketSimulator(rng=np.random.default_rng(7))
        candles = simulator.generate_candles("ADA", lookback_years=5)
    """

    def __init__(
        self,
        rng: np.random.Generator | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()
        self.now = now or _utc_now

    def start_date(self, symbol: str, lookback_years: int, now: datetime) -> datetime:
        """First day of the lookback window, moved forward to the launch month if earlier."""
        start_year, start_month = now.year - lookback_years, now.month - 1
        launch_year, launch_month = launch_date(symbol)
        if (start_year, start_month) < (launch_year, launch_month):
            start_year, start_month = launch_year, launch_month
        return datetime(start_year, start_month + 1, 1, tzinfo=timezone.utc)

    def generate_candles(self, symbol: str, lookback_years: int = 5) -> pd.DataFrame:
        """Generate a candle frame from the window start up to now."""
        now = self.now()
        start = self.start_date(symbol, lookback_years, now)
        start_ms = _to_ms(start)
        total = max(0, (_to_ms(now) - start_ms) // CANDLE_INTERVAL_MS)

        if symbol not in PRICE_ANCHORS or symbol not in LAUNCH_DATES:
            logger.debug("Using generic market parameters", symbol=symbol)

        if total == 0:
            return empty_candles()

        times = start_ms + np.arange(total, dtype=np.int64) * CANDLE_INTERVAL_MS
        targets = self._target_prices(times, asset_anchors(symbol))

        start_price = float(targets[0])
        if not math.isfinite(start_price) or start_price <= 0:
            start_price = FALLBACK_START_PRICE

        rng = self.rng
        volatility = rng.uniform(*VOLATILITY_RANGE, size=total)
        noise_draw = rng.random(total)
        closes = self._price_path(start_price, targets, volatility, noise_draw)
        opens = np.concatenate(([start_price], closes[:-1]))

        wick = volatility * WICK_FACTOR
        highs = np.maximum(opens, closes) * (1 + rng.random(total) * wick)
        lows = np.minimum(opens, closes) * (1 - rng.random(total) * wick)
        lows = np.where(rng.random(total) < SPIKE_PROBABILITY, lows * FLASH_CRASH_FACTOR, lows)
        highs = np.where(rng.random(total) < SPIKE_PROBABILITY, highs * PUMP_FACTOR, highs)

        candles = pd.DataFrame({
            "time": times,
            "open": opens,
            "high": highs,
            "low": lows,
            "close": closes,
            "volume": rng.uniform(0, MAX_VOLUME, size=total),
        })

        logger.debug(
            "Candles generated",
            symbol=symbol,
            candles=total,
            start=start.date().isoformat(),
            first_close=round(float(closes[0]), 8),
            last_close=round(float(closes[-1]), 8),
        )
        return candles

    @staticmethod
    def _target_prices(times: np.ndarray, anchors: Mapping[int, float]) -> np.ndarray:
        """Anchor price for each candle, interpolated by month toward next year's anchor."""
        stamps = pd.to_datetime(times, unit="ms", utc=True)
        years = stamps.year.to_numpy()
        progress = (stamps.month.to_numpy() - 1) / 12
        fallback = anchors.get(FALLBACK_ANCHOR_YEAR, FALLBACK_START_PRICE)

        targets = np.empty(len(times))
        for year in np.unique(years):
            current = anchors.get(int(year)) or fallback
            following = anchors.get(int(year) + 1) or current * 1.2
            mask = years == year
            targets[mask] = current + (following - current) * progress[mask]
        return targets

    @staticmethod
    def _price_path(
        start_price: float,
        targets: np.ndarray,
        volatility: np.ndarray,
        noise_draw: np.ndarray,
    ) -> np.ndarray:
        """Sequential close prices: trend pull toward target plus uniform noise."""
        closes = np.empty(len(targets))
        price = start_price
        for i in range(len(targets)):
            pull = (targets[i] - price) / TREND_PULL_DIVISOR
            noise = (noise_draw[i] - 0.5) * volatility[i] * price
            price = max(price + pull + noise, MIN_PRICE)
            closes[i] = price
        return closes


def generate_candles(
    symbol: str,
    lookback_years: int = 5,
    rng: np.random.Generator | None = None,
) -> pd.DataFrame:
    """Generate synthetic candles for ``symbol`` (see ``MarketSimulator``)."""
    return MarketSimulator(rng=rng).generate_candles(symbol, lookback_years)
