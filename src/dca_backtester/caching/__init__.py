"""Indicator caching shared between backtest runs."""

from dca_backtester.caching.indicator_cache import IndicatorCache

__all__ = ["IndicatorCache"]
