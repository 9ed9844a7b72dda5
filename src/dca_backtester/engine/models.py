"""
DCA backtesting data models: configs and results.

Defines:
- Immutable strategy configuration (capital, costs, entry filters, grid, exit)
- Equity / drawdown curve points
- Backtest result with the full statistics block
- Optimized result carrying a one-level baseline reference
"""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any

from dca_backtester.core.trade import Trade


# =============================================================================
# Strategy Configuration
# =============================================================================


@dataclass(frozen=True)
class StrategyConfig:
    """Configuration for the leveraged DCA grid strategy. Never mutated in place."""

    # Capital sizing
    initial_capital: float = 1000.0
    bot_allocation: float = 0.5  # percent of capital per asset
    leverage: float = 20.0

    # Costs, in percent
    commission: float = 0.05
    slippage: float = 0.01

    # Entry filters
    smart_entry: bool = True
    cci_period: int = 20
    cci_threshold: float = 80.0
    cmo_period: int = 9
    cmo_threshold: float = -90.0
    williams_period: int = 14
    williams_threshold: float = -80.0
    adx_period: int = 14
    adx_threshold: float = 40.0

    # Averaging grid: percent drop from the first fill, and relative size weights
    grid_steps: tuple[float, ...] = (0.0, 6.0, 15.0, 28.0, 40.0, 65.0)
    volume_weights: tuple[float, ...] = (6.66, 8.0, 13.0, 16.0, 30.0, 26.34)

    # Exit
    tp_percent: float = 1.0
    turtle_period: int = 20

    def __post_init__(self) -> None:
        object.__setattr__(self, "grid_steps", tuple(float(s) for s in self.grid_steps))
        object.__setattr__(self, "volume_weights", tuple(float(w) for w in self.volume_weights))
        if len(self.grid_steps) != len(self.volume_weights):
            raise ValueError("grid_steps and volume_weights must have the same length")
        if not self.grid_steps or self.grid_steps[0] != 0:
            raise ValueError("grid_steps[0] must be 0 (the base order)")
        if self.volume_weights[0] <= 0 or any(w < 0 for w in self.volume_weights):
            raise ValueError("volume_weights must be non-negative with a positive base weight")

    @property
    def allocated_capital(self) -> float:
        """Capital slice this asset trades with."""
        return self.initial_capital * (self.bot_allocation / 100)

    @property
    def max_dca_levels(self) -> int:
        """Averaging orders available after the base order."""
        return len(self.grid_steps) - 1

    def evolve(self, **changes: Any) -> "StrategyConfig":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["grid_steps"] = list(self.grid_steps)
        d["volume_weights"] = list(self.volume_weights)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "StrategyConfig":
        """Build from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})


# =============================================================================
# Curve Points
# =============================================================================


@dataclass(frozen=True)
class EquityPoint:
    """Single point in an equity curve."""

    time: int
    equity: float


@dataclass(frozen=True)
class DrawdownPoint:
    """Single point in the drawdown curve (percent below running peak)."""

    time: int
    drawdown: float


# =============================================================================
# Backtest Result
# =============================================================================

DCA_DISTRIBUTION_SIZE = 7


@dataclass(frozen=True)
class BacktestResult:
    """Result of a single-asset backtest. Created once, never edited."""

    symbol: str
    config: StrategyConfig

    # Time series
    trades: tuple[Trade, ...] = ()
    equity_curve: tuple[EquityPoint, ...] = ()
    drawdown_curve: tuple[DrawdownPoint, ...] = ()
    buy_and_hold_curve: tuple[EquityPoint, ...] = ()

    # Statistics
    total_profit: float = 0.0
    net_profit_percent: float = 0.0
    max_drawdown: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    recovery_factor: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    sqn: float = 0.0
    strategy_score: float = 0.0
    total_trades: int = 0
    max_dca_level: int = 0
    final_equity: float = 0.0
    avg_hold_time_hrs: float = 0.0
    daily_profit: float = 0.0
    total_fees: float = 0.0
    buy_and_hold_profit: float = 0.0
    dca_distribution: tuple[int, ...] = (0,) * DCA_DISTRIBUTION_SIZE

    # Simulation metadata
    candles_processed: int = 0
    duration_seconds: float = 0.0

    @property
    def ai_optimized(self) -> bool:
        return False

    @classmethod
    def empty(cls, symbol: str, config: StrategyConfig) -> "BacktestResult":
        """Fully zeroed result for missing or empty candle data."""
        return cls(symbol=symbol, config=config)

    def statistics(self) -> dict[str, Any]:
        """The statistics block (no time series, no timing)."""
        return {
            "total_profit": self.total_profit,
            "net_profit_percent": self.net_profit_percent,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "profit_factor": self.profit_factor,
            "recovery_factor": self.recovery_factor,
            "sharpe_ratio": self.sharpe_ratio,
            "sortino_ratio": self.sortino_ratio,
            "calmar_ratio": self.calmar_ratio,
            "sqn": self.sqn,
            "strategy_score": self.strategy_score,
            "total_trades": self.total_trades,
            "max_dca_level": self.max_dca_level,
            "final_equity": self.final_equity,
            "avg_hold_time_hrs": self.avg_hold_time_hrs,
            "daily_profit": self.daily_profit,
            "total_fees": self.total_fees,
            "buy_and_hold_profit": self.buy_and_hold_profit,
            "dca_distribution": list(self.dca_distribution),
        }

    def to_dict(self, include_series: bool = False) -> dict[str, Any]:
        """Convert to dictionary (series are heavy, so opt-in)."""
        d: dict[str, Any] = {
            "symbol": self.symbol,
            "ai_optimized": self.ai_optimized,
            **{k: round(v, 4) if isinstance(v, float) else v for k, v in self.statistics().items()},
            "candles_processed": self.candles_processed,
            "duration_seconds": round(self.duration_seconds, 3),
            "config": self.config.to_dict(),
        }
        if include_series:
            d["trades"] = [t.to_dict() for t in self.trades]
            d["equity_curve"] = [asdict(p) for p in self.equity_curve]
            d["drawdown_curve"] = [asdict(p) for p in self.drawdown_curve]
            d["buy_and_hold_curve"] = [asdict(p) for p in self.buy_and_hold_curve]
        return d


@dataclass(frozen=True)
class OptimizedBacktestResult(BacktestResult):
    """
    Best result found by the optimizer, annotated with its baseline.

    ``baseline_result`` is a plain ``BacktestResult``; baselines never carry
    a further baseline.
    """

    improved: bool = False
    baseline_result: BacktestResult | None = None
    config_diff: dict[str, float] = field(default_factory=dict)
    generation: int = 0
    best_score: float = 0.0
    baseline_score: float = 0.0

    def __post_init__(self) -> None:
        if isinstance(self.baseline_result, OptimizedBacktestResult):
            raise TypeError("baseline_result must not itself be an optimized result")

    @property
    def ai_optimized(self) -> bool:
        return self.improved

    @classmethod
    def from_result(cls, result: BacktestResult, **annotations: Any) -> "OptimizedBacktestResult":
        """Copy ``result`` into an optimized result with the given annotations."""
        values = {f.name: getattr(result, f.name) for f in fields(BacktestResult)}
        return cls(**values, **annotations)

    def to_dict(self, include_series: bool = False) -> dict[str, Any]:
        d = super().to_dict(include_series=include_series)
        d.update({
            "config_diff": dict(self.config_diff),
            "generation": self.generation,
            "best_score": round(self.best_score, 4),
            "baseline_score": round(self.baseline_score, 4),
            "baseline": (
                self.baseline_result.to_dict(include_series=include_series)
                if self.baseline_result is not None else None
            ),
        })
        return d
