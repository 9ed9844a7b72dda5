"""DCA backtesting engine: simulator, optimizer, reporter, portfolio system."""

from dca_backtester.engine.models import (
    BacktestResult,
    DrawdownPoint,
    EquityPoint,
    OptimizedBacktestResult,
    StrategyConfig,
)
from dca_backtester.engine.simulator import DcaBacktestSimulator, run_backtest
from dca_backtester.engine.optimizer import (
    GenerationSnapshot,
    GeneticOptimizer,
    ScoredConfig,
    optimize,
)
from dca_backtester.engine.reporter import DcaBacktestReporter
from dca_backtester.engine.system import DcaBacktestSystem, PortfolioSummary

__all__ = [
    "BacktestResult",
    "DrawdownPoint",
    "EquityPoint",
    "OptimizedBacktestResult",
    "StrategyConfig",
    "DcaBacktestSimulator",
    "run_backtest",
    "GenerationSnapshot",
    "GeneticOptimizer",
    "ScoredConfig",
    "optimize",
    "DcaBacktestReporter",
    "DcaBacktestSystem",
    "PortfolioSummary",
]
