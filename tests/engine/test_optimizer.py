"""Tests for the genetic optimizer."""

import math
import random

import pytest

from dca_backtester.engine.models import BacktestResult, OptimizedBacktestResult, StrategyConfig
from dca_backtester.engine.optimizer import (
    TUNABLE_FIELDS,
    GenerationSnapshot,
    GeneticOptimizer,
    config_diff,
    crossover,
    evaluate,
    is_improved,
    mutate,
    seed_population,
)


class ScriptedRandom(random.Random):
    """Random source that replays fixed draws for ``random()``."""

    def __init__(self, draws):
        super().__init__(0)
        self._draws = list(draws)

    def random(self):
        return self._draws.pop(0)


def _result(**stats) -> BacktestResult:
    return BacktestResult(symbol="ADA", config=StrategyConfig(), **stats)


class TestFitness:

    def test_deep_drawdown_is_pruned(self):
        assert evaluate(_result(max_drawdown=55.1, total_trades=50, net_profit_percent=500)) == -1000.0

    def test_few_trades_is_pruned(self):
        assert evaluate(_result(max_drawdown=10, total_trades=4, net_profit_percent=50)) == -100.0

    def test_weighted_score(self):
        result = _result(net_profit_percent=10.0, max_drawdown=20.0, sharpe_ratio=1.0, total_trades=5)
        assert evaluate(result) == pytest.approx(120.0)

    def test_improvement_threshold_is_strict(self):
        limit = 100.0 * 1.05
        assert not is_improved(limit, 100.0)
        assert is_improved(math.nextafter(limit, math.inf), 100.0)
        assert not is_improved(100.0, 100.0)

    def test_negative_baseline_counts_equal_score_as_improved(self):
        # -100 * 1.05 = -105, so any score above that is an improvement
        assert is_improved(-100.0, -100.0)


class TestMutation:

    def test_tp_band(self):
        config = StrategyConfig(tp_percent=1.0)
        assert mutate(config, ScriptedRandom([0.1, 0.75])).tp_percent == pytest.approx(1.1)

    def test_turtle_band_floors(self):
        config = StrategyConfig(turtle_period=20)
        assert mutate(config, ScriptedRandom([0.3, 0.0])).turtle_period == 16

    def test_turtle_never_below_one(self):
        config = StrategyConfig(turtle_period=1)
        assert mutate(config, ScriptedRandom([0.3, 0.0])).turtle_period == 1

    def test_cci_band(self):
        config = StrategyConfig(cci_threshold=80.0)
        assert mutate(config, ScriptedRandom([0.5, 0.9])).cci_threshold == pytest.approx(88.0)

    def test_cci_band_is_clamped(self):
        assert mutate(StrategyConfig(cci_threshold=95.0), ScriptedRandom([0.5, 0.99])).cci_threshold == 100.0
        assert mutate(StrategyConfig(cci_threshold=52.0), ScriptedRandom([0.5, 0.0])).cci_threshold == 50.0

    def test_no_change_band_still_copies(self):
        config = StrategyConfig()
        mutated = mutate(config, ScriptedRandom([0.7]))
        assert mutated == config
        assert mutated is not config

    def test_only_tunable_fields_change(self):
        config = StrategyConfig()
        rng = random.Random(3)
        for _ in range(50):
            mutated = mutate(config, rng)
            diff = {k for k, v in mutated.to_dict().items() if v != config.to_dict()[k]}
            assert diff <= set(TUNABLE_FIELDS)


class TestCrossover:

    def test_fields_drawn_per_parent(self):
        p1 = StrategyConfig(tp_percent=1.0, turtle_period=20, cci_threshold=70.0)
        p2 = StrategyConfig(tp_percent=2.0, turtle_period=30, cci_threshold=90.0)

        child = crossover(p1, p2, ScriptedRandom([0.9, 0.1]))
        assert child.tp_percent == 1.0
        assert child.turtle_period == 30
        assert child.cci_threshold == 70.0

    def test_seed_population_starts_with_baseline(self):
        baseline = StrategyConfig()
        population = seed_population(baseline, 6, random.Random(1))
        assert len(population) == 6
        assert population[0] is baseline

    def test_config_diff(self):
        baseline = StrategyConfig()
        best = baseline.evolve(tp_percent=1.4, leverage=5)
        assert config_diff(best, baseline) == {"tp_percent": 1.4}


class TestGeneticOptimizer:

    def test_rejects_empty_population(self):
        with pytest.raises(ValueError):
            GeneticOptimizer(population_size=0)

    def test_optimize_returns_best_found(self, open_config, candles_300):
        snapshots: list[GenerationSnapshot] = []
        optimizer = GeneticOptimizer(population_size=4, generations=2, rng=random.Random(7))
        result = optimizer.optimize("ADA", open_config, candles=candles_300, on_generation=snapshots.append)

        assert isinstance(result, OptimizedBacktestResult)
        assert type(result.baseline_result) is BacktestResult
        assert result.best_score >= result.baseline_score
        assert result.best_score == pytest.approx(evaluate(result))
        assert result.generation == 2
        assert set(result.config_diff) <= set(TUNABLE_FIELDS)
        if not result.improved:
            assert result.config_diff == {}
            assert not result.ai_optimized

        assert [s.index for s in snapshots] == [0, 1]
        for snapshot in snapshots:
            assert len(snapshot.members) == 4
            scores = [m.score for m in snapshot.members]
            assert scores == sorted(scores, reverse=True)

    @pytest.mark.parametrize("above", [True, False])
    def test_improvement_flag_and_diff_at_threshold(self, monkeypatch, open_config, candles_300, above):
        baseline_tp = open_config.tp_percent
        mutant_tp = round(baseline_tp * 1.1, 2)
        limit = 100.0 * 1.05
        mutant_score = math.nextafter(limit, math.inf) if above else limit
        scores = {baseline_tp: 100.0, mutant_tp: mutant_score}
        monkeypatch.setattr(
            "dca_backtester.engine.optimizer.evaluate",
            lambda result: scores[result.config.tp_percent],
        )

        # One TP mutant (band 0.1, scale 1.1), then children that copy their parent
        rng = ScriptedRandom([0.1, 0.75] + [0.9] * 20)
        optimizer = GeneticOptimizer(population_size=2, generations=1, rng=rng)
        result = optimizer.optimize("ADA", open_config, candles=candles_300)

        assert result.baseline_score == 100.0
        assert result.best_score == mutant_score
        assert result.config.tp_percent == mutant_tp
        assert result.baseline_result.config == open_config
        assert result.improved is above
        assert result.ai_optimized is above
        if above:
            assert result.config_diff == {"tp_percent": mutant_tp}
        else:
            assert result.config_diff == {}

    def test_seeded_runs_are_reproducible(self, open_config, candles_300):
        first = GeneticOptimizer(population_size=4, generations=2, rng=random.Random(11))
        second = GeneticOptimizer(population_size=4, generations=2, rng=random.Random(11))

        a = first.optimize("ADA", open_config, candles=candles_300)
        b = second.optimize("ADA", open_config, candles=candles_300)

        assert a.config == b.config
        assert a.best_score == b.best_score
        assert a.improved == b.improved

    def test_parallel_matches_sequential(self, open_config, candles_300):
        sequential = GeneticOptimizer(population_size=4, generations=1, rng=random.Random(5))
        parallel = GeneticOptimizer(population_size=4, generations=1, rng=random.Random(5), max_workers=2)

        a = sequential.optimize("ADA", open_config, candles=candles_300)
        b = parallel.optimize("ADA", open_config, candles=candles_300)

        assert a.config == b.config
        assert a.best_score == b.best_score
