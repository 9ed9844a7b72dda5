"""
GeneticOptimizer: per-asset search over the DCA exit / entry knobs.

A small generational GA over three tunable fields (TP percent, Turtle
period, CCI threshold). Every member is backtested on the same candle
frame as the baseline. The best-ever member across all generations wins,
and it only counts as an improvement when it beats the baseline fitness
by the improvement threshold (default 5%).

Population members can be evaluated in a ProcessPoolExecutor; a generation
is an immutable snapshot, so parallel and sequential runs give identical
rankings.
"""

import math
import random
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Any

import pandas as pd

from dca_backtester.caching.indicator_cache import IndicatorCache
from dca_backtester.core.market_simulator import generate_candles
from dca_backtester.engine.models import (
    BacktestResult,
    OptimizedBacktestResult,
    StrategyConfig,
)
from dca_backtester.engine.simulator import DcaBacktestSimulator
from dca_backtester.logging import get_logger, log_context

logger = get_logger(__name__)

POPULATION_SIZE = 20
GENERATIONS = 5
MUTATION_RATE = 0.2
ELITE_FRACTION = 0.4
IMPROVEMENT_THRESHOLD = 1.05

TUNABLE_FIELDS = ("tp_percent", "turtle_period", "cci_threshold")

# Fitness
MAX_ACCEPTABLE_DRAWDOWN = 55.0
MIN_TRADES = 5
DRAWDOWN_PENALTY_SCORE = -1000.0
FEW_TRADES_PENALTY_SCORE = -100.0
DRAWDOWN_PIVOT = 50.0
DRAWDOWN_WEIGHT = 3.0
SHARPE_WEIGHT = 20.0

# Mutation bands (disjoint, on one uniform draw)
TP_BAND = 0.2
TURTLE_BAND = 0.4
CCI_BAND = 0.6
SCALE_RANGE = (0.8, 1.2)
CCI_SHIFT = 10.0
CCI_BOUNDS = (50.0, 100.0)


# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class ScoredConfig:
    """A population member with its backtest and fitness."""

    config: StrategyConfig
    result: BacktestResult
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": round(self.score, 4),
            **{name: getattr(self.config, name) for name in TUNABLE_FIELDS},
            "net_profit_percent": round(self.result.net_profit_percent, 4),
            "max_drawdown": round(self.result.max_drawdown, 4),
            "total_trades": self.result.total_trades,
        }


@dataclass(frozen=True)
class GenerationSnapshot:
    """One evaluated generation, members sorted best-first."""

    index: int
    members: tuple[ScoredConfig, ...]

    @property
    def best(self) -> ScoredConfig:
        return self.members[0]

    def top(self, count: int) -> tuple[ScoredConfig, ...]:
        return self.members[:count]


# =============================================================================
# GA Operators
# =============================================================================


def evaluate(result: BacktestResult) -> float:
    """Fitness: profit plus drawdown headroom plus Sharpe, with pruning of degenerate runs."""
    if result.max_drawdown > MAX_ACCEPTABLE_DRAWDOWN:
        return DRAWDOWN_PENALTY_SCORE
    if result.total_trades < MIN_TRADES:
        return FEW_TRADES_PENALTY_SCORE
    return (
        result.net_profit_percent
        + (DRAWDOWN_PIVOT - result.max_drawdown) * DRAWDOWN_WEIGHT
        + result.sharpe_ratio * SHARPE_WEIGHT
    )


def _scale(rng: random.Random) -> float:
    low, high = SCALE_RANGE
    return low + rng.random() * (high - low)


def mutate(config: StrategyConfig, rng: random.Random) -> StrategyConfig:
    """Perturb at most one tunable field. Always returns a new config."""
    r = rng.random()
    if r < TP_BAND:
        return config.evolve(tp_percent=round(config.tp_percent * _scale(rng), 2))
    if r < TURTLE_BAND:
        return config.evolve(turtle_period=max(1, math.floor(config.turtle_period * _scale(rng))))
    if r < CCI_BAND:
        shifted = config.cci_threshold + (rng.random() - 0.5) * 2 * CCI_SHIFT
        return config.evolve(cci_threshold=min(CCI_BOUNDS[1], max(CCI_BOUNDS[0], shifted)))
    return config.evolve()


def crossover(parent1: StrategyConfig, parent2: StrategyConfig, rng: random.Random) -> StrategyConfig:
    """Child of ``parent1`` with TP and Turtle period each drawn from either parent."""
    tp = parent1.tp_percent if rng.random() > 0.5 else parent2.tp_percent
    turtle = parent1.turtle_period if rng.random() > 0.5 else parent2.turtle_period
    return parent1.evolve(tp_percent=tp, turtle_period=turtle)


def seed_population(baseline: StrategyConfig, size: int, rng: random.Random) -> list[StrategyConfig]:
    """Generation 0: the unmodified baseline plus ``size - 1`` mutants of it."""
    return [baseline] + [mutate(baseline, rng) for _ in range(size - 1)]


def is_improved(best_score: float, baseline_score: float, threshold: float = IMPROVEMENT_THRESHOLD) -> bool:
    return best_score > baseline_score * threshold


def config_diff(best: StrategyConfig, baseline: StrategyConfig) -> dict[str, float]:
    """Tunable fields whose value differs from the baseline."""
    return {
        name: getattr(best, name)
        for name in TUNABLE_FIELDS
        if getattr(best, name) != getattr(baseline, name)
    }


# =============================================================================
# Standalone trial runner (picklable for ProcessPoolExecutor)
# =============================================================================


def _run_single_trial(config: StrategyConfig, candles: pd.DataFrame, symbol: str) -> BacktestResult:
    return DcaBacktestSimulator(config).run(candles, symbol=symbol)


# =============================================================================
# Optimizer
# =============================================================================


class GeneticOptimizer:
    """
    Generational GA with history elitism.

    Usage:
        optimizer = GeneticOptimizer(rng=random.Random(42))
        result = optimizer.optimize("ADA", StrategyConfig())
        if result.ai_optimized:
            print(result.config_diff)
    """

    def __init__(
        self,
        population_size: int = POPULATION_SIZE,
        generations: int = GENERATIONS,
        mutation_rate: float = MUTATION_RATE,
        elite_fraction: float = ELITE_FRACTION,
        improvement_threshold: float = IMPROVEMENT_THRESHOLD,
        rng: random.Random | None = None,
        max_workers: int | None = None,
        indicator_cache: IndicatorCache | None = None,
    ) -> None:
        if population_size < 1:
            raise ValueError("population_size must be at least 1")
        self.population_size = population_size
        self.generations = generations
        self.mutation_rate = mutation_rate
        self.elite_fraction = elite_fraction
        self.improvement_threshold = improvement_threshold
        self.rng = rng if rng is not None else random.Random()
        self.max_workers = max_workers
        self.indicator_cache = indicator_cache if indicator_cache is not None else IndicatorCache()

    def optimize(
        self,
        symbol: str,
        baseline_config: StrategyConfig,
        candles: pd.DataFrame | None = None,
        on_generation: Callable[[GenerationSnapshot], None] | None = None,
    ) -> OptimizedBacktestResult:
        """Search for a better config for ``symbol``; returns the best result found."""
        start_time = time.perf_counter()

        with log_context(symbol=symbol):
            if candles is None:
                candles = generate_candles(symbol)

            baseline = DcaBacktestSimulator(
                baseline_config, indicator_cache=self.indicator_cache,
            ).run(candles, symbol=symbol)
            baseline_score = evaluate(baseline)

            logger.info(
                "Starting optimization",
                population=self.population_size,
                generations=self.generations,
                baseline_score=round(baseline_score, 4),
                max_workers=self.max_workers,
            )

            best = ScoredConfig(baseline_config, baseline, baseline_score)
            evaluated: dict[StrategyConfig, ScoredConfig] = {baseline_config: best}
            population = seed_population(baseline_config, self.population_size, self.rng)

            for index in range(self.generations):
                snapshot = self._evaluate_generation(index, population, candles, symbol, evaluated)

                if snapshot.best.score > best.score:
                    best = snapshot.best

                logger.debug(
                    "Generation evaluated",
                    generation=index + 1,
                    generation_best=round(snapshot.best.score, 4),
                    best_score=round(best.score, 4),
                )
                if on_generation is not None:
                    on_generation(snapshot)

                population = self._next_generation(snapshot)

            improved = is_improved(best.score, baseline_score, self.improvement_threshold)
            diff = config_diff(best.config, baseline_config) if improved else {}

            logger.info(
                "Optimization complete",
                improved=improved,
                best_score=round(best.score, 4),
                baseline_score=round(baseline_score, 4),
                config_diff=diff,
                cache=self.indicator_cache.stats,
                duration_s=round(time.perf_counter() - start_time, 2),
            )

        return OptimizedBacktestResult.from_result(
            best.result,
            improved=improved,
            baseline_result=baseline,
            config_diff=diff,
            generation=self.generations,
            best_score=best.score,
            baseline_score=baseline_score,
        )

    # =========================================================================
    # Generation Step
    # =========================================================================

    def _evaluate_generation(
        self,
        index: int,
        population: Sequence[StrategyConfig],
        candles: pd.DataFrame,
        symbol: str,
        evaluated: dict[StrategyConfig, ScoredConfig],
    ) -> GenerationSnapshot:
        """Backtest every member once; configs already seen reuse their result."""
        pending = list(dict.fromkeys(c for c in population if c not in evaluated))
        for config, result in zip(pending, self._run_trials(pending, candles, symbol)):
            evaluated[config] = ScoredConfig(config, result, evaluate(result))

        members = sorted((evaluated[c] for c in population), key=lambda m: m.score, reverse=True)
        return GenerationSnapshot(index=index, members=tuple(members))

    def _next_generation(self, snapshot: GenerationSnapshot) -> list[StrategyConfig]:
        """Top fraction survives as parents; the rest is refilled by crossover + mutation."""
        parent_count = max(1, int(self.population_size * self.elite_fraction))
        parents = [m.config for m in snapshot.top(parent_count)]

        next_gen = list(parents)
        while len(next_gen) < self.population_size:
            child = crossover(self.rng.choice(parents), self.rng.choice(parents), self.rng)
            if self.rng.random() < self.mutation_rate:
                child = mutate(child, self.rng)
            next_gen.append(child)
        return next_gen

    # =========================================================================
    # Trial Execution
    # =========================================================================

    def _run_trials(
        self,
        configs: list[StrategyConfig],
        candles: pd.DataFrame,
        symbol: str,
    ) -> list[BacktestResult]:
        """Run trials in order, using ProcessPoolExecutor when max_workers > 1."""
        if not configs:
            return []
        if self.max_workers and self.max_workers > 1 and len(configs) > 1:
            return self._run_trials_parallel(configs, candles, symbol)
        return [
            DcaBacktestSimulator(c, indicator_cache=self.indicator_cache).run(candles, symbol=symbol)
            for c in configs
        ]

    def _run_trials_parallel(
        self,
        configs: list[StrategyConfig],
        candles: pd.DataFrame,
        symbol: str,
    ) -> list[BacktestResult]:
        with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(_run_single_trial, c, candles, symbol) for c in configs]
            results = []
            for idx, future in enumerate(futures):
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.error("Trial failed", trial_idx=idx, error=str(e))
                    raise
        return results


def optimize(
    symbol: str,
    baseline_config: StrategyConfig,
    rng: random.Random | None = None,
    candles: pd.DataFrame | None = None,
) -> OptimizedBacktestResult:
    """Run the default GA for ``symbol``."""
    return GeneticOptimizer(rng=rng).optimize(symbol, baseline_config, candles=candles)
