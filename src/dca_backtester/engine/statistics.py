"""
Performance statistics for DCA backtests.

All functions return plain finite floats: any NaN / infinite / non-numeric
intermediate is replaced by a fallback (0 unless stated otherwise).
"""

import math
from collections.abc import Sequence
from typing import Any

DAYS_PER_YEAR = 365
HOURS_PER_CANDLE = 4
MIN_YEARS = 0.1
MIN_EQUITY_RATIO_BASE = 0.1
SENTINEL_RATIO = 100.0


def safe(value: Any, fallback: float = 0.0) -> float:
    """Coerce ``value`` to a finite float, or return ``fallback``."""
    if isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return number


def mean(data: Sequence[float]) -> float:
    return sum(data) / len(data) if data else 0.0


def std_dev(data: Sequence[float]) -> float:
    """Sample standard deviation (n - 1); 0 for fewer than two samples."""
    if len(data) < 2:
        return 0.0
    avg = mean(data)
    variance = sum((x - avg) ** 2 for x in data) / (len(data) - 1)
    return math.sqrt(variance)


def win_rate(pnls: Sequence[float]) -> float:
    """Percentage of trades with positive PnL."""
    if not pnls:
        return 0.0
    wins = sum(1 for p in pnls if p > 0)
    return safe(wins / len(pnls) * 100)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / |gross loss|; 100 when there are wins and no losses, 0 when neither."""
    gross_win = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p <= 0))
    if gross_loss == 0:
        return SENTINEL_RATIO if gross_win > 0 else 0.0
    return safe(gross_win / gross_loss)


def recovery_factor(net_profit_percent: float, max_drawdown: float) -> float:
    if max_drawdown == 0:
        return SENTINEL_RATIO if net_profit_percent > 0 else 0.0
    return safe(net_profit_percent / max_drawdown)


def sharpe_ratio(daily_returns: Sequence[float]) -> float:
    """Annualized mean / stddev of daily returns."""
    deviation = std_dev(daily_returns)
    if deviation == 0:
        return 0.0
    return safe(mean(daily_returns) / deviation * math.sqrt(DAYS_PER_YEAR))


def sortino_ratio(daily_returns: Sequence[float]) -> float:
    """Like Sharpe, but the denominator only uses negative daily returns."""
    downside = std_dev([r for r in daily_returns if r < 0])
    if downside == 0:
        return 0.0
    return safe(mean(daily_returns) / downside * math.sqrt(DAYS_PER_YEAR))


def elapsed_years(candle_count: int) -> float:
    return max(MIN_YEARS, candle_count * HOURS_PER_CANDLE / (24 * DAYS_PER_YEAR))


def cagr_percent(final_equity: float, allocated_capital: float, years: float) -> float:
    """Compound annual growth, in percent. The equity ratio base is floored at 0.1."""
    if allocated_capital <= 0:
        return 0.0
    ratio = max(MIN_EQUITY_RATIO_BASE, final_equity) / allocated_capital
    try:
        growth = ratio ** (1 / years)
    except OverflowError:
        return 0.0
    return safe((growth - 1) * 100)


def calmar_ratio(cagr: float, max_drawdown: float) -> float:
    if max_drawdown == 0:
        return SENTINEL_RATIO
    return safe(cagr / max_drawdown)


def system_quality_number(pnls: Sequence[float]) -> float:
    """SQN = mean / stddev of trade PnL, times sqrt(trade count)."""
    deviation = std_dev(pnls)
    if deviation == 0:
        return 0.0
    return safe(mean(pnls) / deviation * math.sqrt(len(pnls)))


def strategy_score(
    sharpe: float,
    recovery: float,
    max_drawdown: float,
    total_profit: float,
) -> float:
    """Heuristic 0-100 quality score."""
    score = 50.0
    if sharpe > 1.5:
        score += 15
    if recovery > 5:
        score += 15
    if max_drawdown < 30:
        score += 10
    if total_profit < 0:
        score = 10.0
    return max(0.0, min(100.0, safe(score)))
