"""Tests for configs and result models."""

import pytest

from dca_backtester.engine.models import (
    DCA_DISTRIBUTION_SIZE,
    BacktestResult,
    OptimizedBacktestResult,
    StrategyConfig,
)


class TestStrategyConfig:

    def test_defaults(self):
        config = StrategyConfig()
        assert config.allocated_capital == pytest.approx(5.0)
        assert config.max_dca_levels == 5
        assert config.grid_steps[0] == 0
        assert len(config.grid_steps) == len(config.volume_weights)

    def test_lists_are_coerced_to_tuples(self):
        config = StrategyConfig(grid_steps=[0, 5, 10], volume_weights=[1, 2, 3])
        assert config.grid_steps == (0.0, 5.0, 10.0)
        assert isinstance(config.volume_weights, tuple)
        hash(config)

    def test_mismatched_ladder_rejected(self):
        with pytest.raises(ValueError):
            StrategyConfig(grid_steps=(0, 5), volume_weights=(1, 2, 3))

    def test_base_level_must_be_zero(self):
        with pytest.raises(ValueError):
            StrategyConfig(grid_steps=(1, 5), volume_weights=(1, 2))

    def test_base_weight_must_be_positive(self):
        with pytest.raises(ValueError):
            StrategyConfig(grid_steps=(0, 5), volume_weights=(0, 2))

    def test_evolve_returns_new_instance(self):
        config = StrategyConfig()
        tuned = config.evolve(tp_percent=1.5)
        assert tuned is not config
        assert tuned.tp_percent == 1.5
        assert config.tp_percent == 1.0

        with pytest.raises(AttributeError):
            config.tp_percent = 2.0  # type: ignore[misc]

    def test_dict_round_trip_ignores_unknown_keys(self):
        config = StrategyConfig(leverage=10, turtle_period=30)
        d = config.to_dict()
        assert d["grid_steps"] == list(config.grid_steps)

        d["_backtest_metrics"] = {"sharpe_ratio": 1.0}
        assert StrategyConfig.from_dict(d) == config


class TestBacktestResult:

    def test_empty_result_is_zeroed(self):
        result = BacktestResult.empty("ADA", StrategyConfig())
        stats = result.statistics()

        assert result.trades == ()
        assert result.equity_curve == ()
        assert stats["dca_distribution"] == [0] * DCA_DISTRIBUTION_SIZE
        assert all(v == 0 for k, v in stats.items() if k != "dca_distribution")
        assert result.ai_optimized is False

    def test_to_dict_series_opt_in(self):
        result = BacktestResult.empty("ADA", StrategyConfig())
        assert "equity_curve" not in result.to_dict()
        assert result.to_dict(include_series=True)["equity_curve"] == []


class TestOptimizedBacktestResult:

    def test_from_result_copies_statistics(self):
        baseline = BacktestResult(symbol="ADA", config=StrategyConfig(), total_trades=7, sharpe_ratio=1.2)
        optimized = OptimizedBacktestResult.from_result(
            baseline,
            improved=True,
            baseline_result=baseline,
            config_diff={"tp_percent": 1.3},
        )

        assert optimized.total_trades == 7
        assert optimized.ai_optimized is True
        assert optimized.to_dict()["baseline"]["total_trades"] == 7
        assert optimized.to_dict()["config_diff"] == {"tp_percent": 1.3}

    def test_baseline_cannot_nest(self):
        base = BacktestResult(symbol="ADA", config=StrategyConfig())
        first = OptimizedBacktestResult.from_result(base, baseline_result=base)

        with pytest.raises(TypeError):
            OptimizedBacktestResult.from_result(base, baseline_result=first)

    def test_not_improved_is_not_ai_optimized(self):
        base = BacktestResult(symbol="ADA", config=StrategyConfig())
        result = OptimizedBacktestResult.from_result(base, improved=False, baseline_result=base)
        assert result.ai_optimized is False
