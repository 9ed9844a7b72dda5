"""
Command-line interface for the DCA backtester.

Usage:
    dca-backtest run ADA --years 3
    dca-backtest optimize SOL --seed 7 --json
    dca-backtest portfolio --symbols ADA,XRP,DOT --config preset.yaml
"""

import argparse
import json
import random
import sys
from collections.abc import Sequence
from typing import Any

import numpy as np
import yaml
from pydantic import ValidationError

from dca_backtester.config import DEFAULT_STRATEGY_CONFIG, Settings, load_strategy_config
from dca_backtester.core.market_simulator import COIN_LIST, generate_candles
from dca_backtester.engine.models import BacktestResult, StrategyConfig
from dca_backtester.engine.optimizer import GeneticOptimizer
from dca_backtester.engine.reporter import DcaBacktestReporter
from dca_backtester.engine.simulator import run_backtest
from dca_backtester.engine.system import DcaBacktestSystem
from dca_backtester.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=str, default="", help="Strategy config YAML")
    common.add_argument("--years", type=int, default=5, help="Lookback years of synthetic data")
    common.add_argument("--seed", type=int, default=None, help="Seed for data generation and GA")
    common.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    common.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")

    parser = argparse.ArgumentParser(
        prog="dca-backtest",
        description="Leveraged DCA grid backtester",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Backtest one asset")
    run.add_argument("symbol")

    opt = sub.add_parser("optimize", parents=[common], help="GA-tune one asset")
    opt.add_argument("symbol")
    opt.add_argument("--workers", type=int, default=None)

    portfolio = sub.add_parser("portfolio", parents=[common], help="Backtest many assets")
    portfolio.add_argument("--symbols", type=str, default="", help="Comma-separated, default: all coins")
    portfolio.add_argument("--tune", action="store_true", help="Also GA-tune every asset")
    portfolio.add_argument("--workers", type=int, default=None)

    return parser


def _load_config(path: str) -> StrategyConfig:
    return load_strategy_config(path) if path else DEFAULT_STRATEGY_CONFIG


def _candles(symbol: str, years: int, seed: int | None):
    rng = np.random.default_rng(seed) if seed is not None else None
    return generate_candles(symbol, years, rng=rng)


def _result_row(result: BacktestResult) -> str:
    flag = "*" if result.ai_optimized else " "
    return (
        f"{flag}{result.symbol:10s} net={result.net_profit_percent:+9.2f}%  "
        f"dd={result.max_drawdown:6.2f}%  sharpe={result.sharpe_ratio:+6.2f}  "
        f"trades={result.total_trades:4d}  dca_max={result.max_dca_level}  "
        f"score={result.strategy_score:5.1f}"
    )


def _emit(payload: dict[str, Any], as_json: bool, lines: Sequence[str]) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        print("\n".join(lines))


def cmd_run(args: argparse.Namespace, config: StrategyConfig) -> None:
    result = run_backtest(args.symbol, config, candles=_candles(args.symbol, args.years, args.seed))
    _emit(result.to_dict(), args.json, [_result_row(result)])


def cmd_optimize(args: argparse.Namespace, config: StrategyConfig) -> None:
    optimizer = GeneticOptimizer(
        rng=random.Random(args.seed) if args.seed is not None else None,
        max_workers=args.workers,
    )
    result = optimizer.optimize(
        args.symbol, config, candles=_candles(args.symbol, args.years, args.seed),
    )
    report = DcaBacktestReporter().generate_optimization_report(result)
    lines = [
        _result_row(result.baseline_result) + "  (baseline)",
        _result_row(result) + "  (best)",
        f"improved={result.improved}  diff={result.config_diff}",
    ]
    _emit(report, args.json, lines)


def cmd_portfolio(args: argparse.Namespace, config: StrategyConfig) -> None:
    symbols = [s.strip().upper() for s in args.symbols.split(",") if s.strip()] or list(COIN_LIST)
    system = DcaBacktestSystem(
        config,
        symbols=symbols,
        max_workers=args.workers,
        optimizer=GeneticOptimizer(
            rng=random.Random(args.seed) if args.seed is not None else None,
            max_workers=args.workers,
        ),
        lookback_years=args.years,
        seed=args.seed,
    )
    results = system.run_all()
    if args.tune:
        results = system.tune_all(results)
    summary = system.portfolio_summary(results)

    payload = {
        "portfolio": summary.to_dict(),
        "results": [r.to_dict() for r in results],
    }
    lines = [_result_row(r) for r in results] + [
        "",
        f"Total equity: {summary.total_equity:.2f}  profit: {summary.total_profit:+.2f}  "
        f"optimized: {summary.optimized_count}/{summary.assets}",
    ]
    _emit(payload, args.json, lines)


COMMANDS = {
    "run": cmd_run,
    "optimize": cmd_optimize,
    "portfolio": cmd_portfolio,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(
        log_level=args.log_level or settings.log_level,
        json_logs=settings.json_logs,
        log_to_file=settings.log_dir is not None,
        log_dir=settings.log_dir,
    )

    try:
        config = _load_config(args.config)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        print(f"ERROR: invalid config: {e}", file=sys.stderr)
        return 2

    COMMANDS[args.command](args, config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
