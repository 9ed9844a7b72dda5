"""
DcaBacktestSystem: portfolio-wide DCA backtesting pipeline.

Orchestrates:
1. Candle loading (caller-supplied frames or synthetic generation)
2. One independent backtest per asset
3. Per-asset GA tuning of assets not yet optimized
4. Portfolio totals across all asset slices
"""

import time
import zlib
from collections.abc import Mapping, Sequence
from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import pandas as pd

from dca_backtester.caching.indicator_cache import IndicatorCache
from dca_backtester.core.market_simulator import COIN_LIST, generate_candles
from dca_backtester.engine.models import BacktestResult, StrategyConfig
from dca_backtester.engine.optimizer import GeneticOptimizer
from dca_backtester.engine.simulator import DcaBacktestSimulator
from dca_backtester.engine.statistics import mean
from dca_backtester.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PortfolioSummary:
    """Totals across all asset slices; cash not allocated to any bot stays flat."""

    assets: int
    allocated_per_bot: float
    total_allocated: float
    unallocated_cash: float
    total_equity: float
    total_profit: float
    optimized_count: int
    avg_strategy_score: float

    def to_dict(self) -> dict[str, Any]:
        return {k: round(v, 4) if isinstance(v, float) else v for k, v in asdict(self).items()}


def _run_symbol(symbol: str, config: StrategyConfig, candles: pd.DataFrame) -> BacktestResult:
    """Run one asset (picklable for ProcessPoolExecutor)."""
    return DcaBacktestSimulator(config).run(candles, symbol=symbol)


class DcaBacktestSystem:
    """Runs the same strategy config across a list of assets."""

    def __init__(
        self,
        config: StrategyConfig,
        symbols: Sequence[str] = COIN_LIST,
        max_workers: int | None = None,
        optimizer: GeneticOptimizer | None = None,
        lookback_years: int = 5,
        seed: int | None = None,
    ) -> None:
        self.config = config
        self.symbols = tuple(symbols)
        self.max_workers = max_workers
        self.indicator_cache = IndicatorCache()
        self.optimizer = optimizer or GeneticOptimizer(
            max_workers=max_workers,
            indicator_cache=self.indicator_cache,
        )
        self.lookback_years = lookback_years
        self.seed = seed

    def load_candles(self, symbol: str) -> pd.DataFrame:
        """Synthetic candles for ``symbol``; reproducible per symbol when a seed is set."""
        rng = None
        if self.seed is not None:
            rng = np.random.default_rng([self.seed, zlib.crc32(symbol.encode())])
        return generate_candles(symbol, self.lookback_years, rng=rng)

    def run_all(self, candles_map: Mapping[str, pd.DataFrame] | None = None) -> list[BacktestResult]:
        """Backtest every symbol, in symbol order."""
        start_time = time.perf_counter()
        candles_map = candles_map or {}

        logger.info("Starting portfolio backtest", symbols=len(self.symbols), max_workers=self.max_workers)

        frames = [
            candles_map[s] if s in candles_map else self.load_candles(s)
            for s in self.symbols
        ]

        if self.max_workers and self.max_workers > 1 and len(self.symbols) > 1:
            with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(
                    _run_symbol, self.symbols, [self.config] * len(self.symbols), frames,
                ))
        else:
            results = [_run_symbol(s, self.config, f) for s, f in zip(self.symbols, frames)]

        logger.info(
            "Portfolio backtest complete",
            symbols=len(results),
            profitable=sum(1 for r in results if r.total_profit > 0),
            duration_s=round(time.perf_counter() - start_time, 2),
        )
        return results

    def tune_all(
        self,
        results: Sequence[BacktestResult],
        candles_map: Mapping[str, pd.DataFrame] | None = None,
    ) -> list[BacktestResult]:
        """Optimize each asset not yet optimized, replacing its result in place of order."""
        candles_map = candles_map or {}
        tuned: list[BacktestResult] = []

        for position, result in enumerate(results, start=1):
            if result.ai_optimized:
                tuned.append(result)
                continue
            candles = candles_map.get(result.symbol)
            if candles is None:
                candles = self.load_candles(result.symbol)
            optimized = self.optimizer.optimize(result.symbol, self.config, candles=candles)
            tuned.append(optimized)
            logger.info(
                "Asset tuned",
                symbol=result.symbol,
                progress=f"{position}/{len(results)}",
                improved=optimized.improved,
            )

        return tuned

    def portfolio_summary(self, results: Sequence[BacktestResult]) -> PortfolioSummary:
        allocated_per_bot = self.config.allocated_capital
        total_allocated = allocated_per_bot * len(results)
        unallocated = max(0.0, self.config.initial_capital - total_allocated)
        total_equity = sum(r.final_equity for r in results) + unallocated

        return PortfolioSummary(
            assets=len(results),
            allocated_per_bot=allocated_per_bot,
            total_allocated=total_allocated,
            unallocated_cash=unallocated,
            total_equity=total_equity,
            total_profit=total_equity - self.config.initial_capital,
            optimized_count=sum(1 for r in results if r.ai_optimized),
            avg_strategy_score=mean([r.strategy_score for r in results]),
        )
