"""
API routes for the DCA backtesting service.

Endpoints:
- GET  /health: health check
- GET  /api/v1/coins: tradable symbols
- POST /api/v1/backtest/run: backtest one asset, returns the full result
- POST /api/v1/optimize/run: GA-tune one asset, returns the optimization report
"""

import asyncio
import random
from functools import partial
from typing import Annotated, Any

import numpy as np
import pandas as pd
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from dca_backtester import __version__
from dca_backtester.api.auth import verify_api_key
from dca_backtester.config import parse_strategy_config
from dca_backtester.core.market_simulator import COIN_LIST, generate_candles
from dca_backtester.engine.optimizer import GeneticOptimizer
from dca_backtester.engine.reporter import DcaBacktestReporter
from dca_backtester.engine.simulator import run_backtest as run_dca_backtest
from dca_backtester.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================


class BacktestRequest(BaseModel):
    symbol: str = "ADA"
    lookback_years: int = Field(default=5, ge=1, le=10)
    config: dict[str, Any] | None = None
    candles: list[dict[str, Any]] | None = None
    seed: int | None = None
    include_series: bool = True


class OptimizeRequest(BaseModel):
    symbol: str = "ADA"
    lookback_years: int = Field(default=5, ge=1, le=10)
    config: dict[str, Any] | None = None
    candles: list[dict[str, Any]] | None = None
    seed: int | None = None
    population_size: int = Field(default=20, ge=2, le=200)
    generations: int = Field(default=5, ge=1, le=50)
    max_workers: int | None = Field(default=None, ge=1, le=16)


# =============================================================================
# Health
# =============================================================================


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "dca-backtester",
        "version": __version__,
    }


@router.get("/api/v1/coins")
async def list_coins(
    api_key: Annotated[str, Depends(verify_api_key)],
) -> list[str]:
    return list(COIN_LIST)


# =============================================================================
# Backtest
# =============================================================================


@router.post("/api/v1/backtest/run")
async def run_backtest(
    req: BacktestRequest,
    request: Request,
    api_key: Annotated[str, Depends(verify_api_key)],
) -> dict[str, Any]:
    """Backtest one asset with the given config overrides."""
    config = parse_strategy_config(req.config)
    candles = _load_candles(req.symbol, req.candles, req.lookback_years, req.seed)
    indicator_cache = getattr(request.app.state, "indicator_cache", None)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(
        None,
        partial(run_dca_backtest, req.symbol, config, candles, indicator_cache),
    )

    logger.info("Backtest request served", symbol=req.symbol, trades=result.total_trades)
    return result.to_dict(include_series=req.include_series)


# =============================================================================
# Optimize
# =============================================================================


@router.post("/api/v1/optimize/run")
async def run_optimize(
    req: OptimizeRequest,
    request: Request,
    api_key: Annotated[str, Depends(verify_api_key)],
) -> dict[str, Any]:
    """Tune one asset and return baseline vs optimized statistics plus a preset."""
    config = parse_strategy_config(req.config)
    candles = _load_candles(req.symbol, req.candles, req.lookback_years, req.seed)

    optimizer = GeneticOptimizer(
        population_size=req.population_size,
        generations=req.generations,
        rng=random.Random(req.seed) if req.seed is not None else None,
        max_workers=req.max_workers,
        indicator_cache=getattr(request.app.state, "indicator_cache", None),
    )

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(
        None,
        partial(optimizer.optimize, req.symbol, config, candles=candles),
    )

    reporter = DcaBacktestReporter()
    report = reporter.generate_optimization_report(result)
    report["preset_yaml"] = reporter.export_preset_yaml(result)
    return report


# =============================================================================
# Helpers
# =============================================================================


def _load_candles(
    symbol: str,
    candles_data: list[dict[str, Any]] | None,
    lookback_years: int,
    seed: int | None,
) -> pd.DataFrame:
    """Inline candles from the request, or synthetic candles for ``symbol``."""
    if candles_data:
        return pd.DataFrame(candles_data)
    rng = np.random.default_rng(seed) if seed is not None else None
    return generate_candles(symbol, lookback_years, rng=rng)
