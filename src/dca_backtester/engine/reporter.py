"""
DcaBacktestReporter: Report generation and preset export.

Generates:
- Summary reports across many asset backtests
- Optimization reports (baseline vs tuned, config diff)
- JSON/YAML strategy presets, loadable back with ``load_strategy_config``
"""

import json
from collections.abc import Sequence
from typing import Any

import yaml

from dca_backtester.engine.models import BacktestResult, OptimizedBacktestResult
from dca_backtester.engine.statistics import mean
from dca_backtester.logging import get_logger

logger = get_logger(__name__)

METRICS_KEY = "_backtest_metrics"


class DcaBacktestReporter:
    """Generates reports and exports presets from backtest/optimization results."""

    def generate_summary(
        self,
        results: Sequence[BacktestResult],
        top_n: int = 5,
    ) -> dict[str, Any]:
        """Generate summary report from multiple backtest results."""
        if not results:
            return {"results": [], "count": 0}

        by_profit = sorted(results, key=lambda r: r.net_profit_percent, reverse=True)
        by_sharpe = sorted(results, key=lambda r: r.sharpe_ratio, reverse=True)
        by_drawdown = sorted(results, key=lambda r: r.max_drawdown)

        logger.info("Summary report generated", count=len(results))

        return {
            "count": len(results),
            "top_by_profit": [r.to_dict() for r in by_profit[:top_n]],
            "top_by_sharpe": [r.to_dict() for r in by_sharpe[:top_n]],
            "lowest_drawdown": [r.to_dict() for r in by_drawdown[:top_n]],
            "avg_net_profit_percent": mean([r.net_profit_percent for r in results]),
            "avg_sharpe": mean([r.sharpe_ratio for r in results]),
            "avg_drawdown": mean([r.max_drawdown for r in results]),
            "total_trades": sum(r.total_trades for r in results),
        }

    def generate_optimization_report(self, result: OptimizedBacktestResult) -> dict[str, Any]:
        """Baseline vs optimized statistics for one asset."""
        baseline = result.baseline_result
        report: dict[str, Any] = {
            "symbol": result.symbol,
            "improved": result.improved,
            "generations": result.generation,
            "best_score": round(result.best_score, 4),
            "baseline_score": round(result.baseline_score, 4),
            "score_delta": round(result.best_score - result.baseline_score, 4),
            "config_diff": dict(result.config_diff),
            "optimized": result.statistics(),
            "baseline": baseline.statistics() if baseline is not None else None,
        }

        logger.info(
            "Optimization report generated",
            symbol=result.symbol,
            improved=result.improved,
            changed=sorted(result.config_diff),
        )
        return report

    def export_preset_json(self, result: BacktestResult) -> str:
        """Export the result's strategy config as a JSON preset."""
        return json.dumps(self._build_preset_dict(result), indent=2)

    def export_preset_yaml(self, result: BacktestResult) -> str:
        """Export the result's strategy config as a YAML preset."""
        return yaml.safe_dump(self._build_preset_dict(result), default_flow_style=False, sort_keys=False)

    def _build_preset_dict(self, result: BacktestResult) -> dict[str, Any]:
        preset: dict[str, Any] = {"symbol": result.symbol, **result.config.to_dict()}
        preset[METRICS_KEY] = {
            "net_profit_percent": round(result.net_profit_percent, 4),
            "max_drawdown": round(result.max_drawdown, 4),
            "sharpe_ratio": round(result.sharpe_ratio, 4),
            "win_rate": round(result.win_rate, 4),
            "total_trades": result.total_trades,
            "strategy_score": result.strategy_score,
            "ai_optimized": result.ai_optimized,
        }
        return preset
