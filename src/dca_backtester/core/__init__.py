"""Core DCA strategy components: indicators, trade lifecycle, market data."""

from dca_backtester.core.indicators import (
    TurtleChannel,
    adx,
    atr,
    cci,
    cmo,
    ema,
    sma,
    true_range,
    turtle_channels,
    williams_r,
)
from dca_backtester.core.market_simulator import (
    COIN_LIST,
    Candle,
    MarketSimulator,
    generate_candles,
)
from dca_backtester.core.trade import (
    CloseReason,
    OrderSide,
    Trade,
    TradeOrder,
    TradeStatus,
)

__all__ = [
    "TurtleChannel",
    "adx",
    "atr",
    "cci",
    "cmo",
    "ema",
    "sma",
    "true_range",
    "turtle_channels",
    "williams_r",
    "COIN_LIST",
    "Candle",
    "MarketSimulator",
    "generate_candles",
    "CloseReason",
    "OrderSide",
    "Trade",
    "TradeOrder",
    "TradeStatus",
]
