"""
Trade lifecycle for the DCA grid strategy.

A trade owns its averaging ladder (base order + DCA fills) and moves
OPEN -> CLOSED exactly once.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

MS_PER_HOUR = 3600 * 1000


# =============================================================================
# Enums
# =============================================================================


class TradeStatus(str, Enum):
    """Status of a trade."""

    OPEN = "open"
    CLOSED = "closed"


class OrderSide(str, Enum):
    """Order side. The strategy is long-only, so only BUY fills are recorded."""

    BUY = "buy"


class CloseReason(str, Enum):
    """Why a trade was closed."""

    TAKE_PROFIT = "take_profit"
    END_OF_DATA = "end_of_data"


BASE_ORDER_REASON = "Signal"


def dca_reason(level: int) -> str:
    """Reason tag for the ``level``-th averaging order."""
    return f"DCA {level}"


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class TradeOrder:
    """A single fill. ``volume`` is notional (quote currency)."""

    price: float
    volume: float
    fee: float
    time: int
    side: OrderSide = OrderSide.BUY
    reason: str = BASE_ORDER_REASON

    @property
    def coins(self) -> float:
        return self.volume / self.price

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "volume": self.volume,
            "fee": self.fee,
            "time": self.time,
            "side": self.side.value,
            "reason": self.reason,
        }


@dataclass
class Trade:
    """
    Open or closed long position built from a DCA ladder.

    ``avg_price`` and ``total_volume`` are always the volume-weighted
    aggregate of ``orders``.
    """

    id: str
    symbol: str
    entry_time: int
    orders: list[TradeOrder] = field(default_factory=list)
    status: TradeStatus = TradeStatus.OPEN
    avg_price: float = 0.0
    total_volume: float = 0.0
    dca_level_reached: int = 0

    exit_price: float | None = None
    exit_time: int | None = None
    close_reason: CloseReason | None = None
    pnl: float = 0.0
    pnl_percent: float = 0.0
    max_drawdown_percent: float = 0.0

    @classmethod
    def open(cls, trade_id: str, symbol: str, base_order: TradeOrder) -> "Trade":
        """Open a trade with its base order."""
        trade = cls(id=trade_id, symbol=symbol, entry_time=base_order.time)
        trade.orders.append(base_order)
        trade._recalculate()
        return trade

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def first_fill_price(self) -> float:
        return self.orders[0].price

    @property
    def base_volume(self) -> float:
        return self.orders[0].volume

    @property
    def coins(self) -> float:
        return self.total_volume / self.avg_price if self.avg_price > 0 else 0.0

    @property
    def total_fees(self) -> float:
        return sum(o.fee for o in self.orders)

    @property
    def hold_time_hours(self) -> float:
        if self.exit_time is None:
            return 0.0
        return (self.exit_time - self.entry_time) / MS_PER_HOUR

    def add_order(self, order: TradeOrder) -> None:
        """Record a DCA fill and advance the ladder."""
        if not self.is_open:
            raise ValueError(f"Trade {self.id} is not open")
        self.orders.append(order)
        self.dca_level_reached += 1
        self._recalculate()

    def position_value(self, price: float) -> float:
        return self.coins * price

    def unrealized_pnl(self, price: float) -> float:
        return self.position_value(price) - self.total_volume

    def track_drawdown(self, low: float) -> None:
        """Keep the worst adverse excursion of ``low`` versus the average price, in percent."""
        if self.avg_price <= 0:
            return
        excursion = (low - self.avg_price) / self.avg_price * 100
        if excursion < self.max_drawdown_percent:
            self.max_drawdown_percent = excursion

    def close(
        self,
        exit_price: float,
        exit_time: int,
        pnl: float,
        reason: CloseReason = CloseReason.TAKE_PROFIT,
    ) -> None:
        """Transition OPEN -> CLOSED. A trade can only be closed once."""
        if not self.is_open:
            raise ValueError(f"Trade {self.id} is already closed")
        self.status = TradeStatus.CLOSED
        self.exit_price = exit_price
        self.exit_time = exit_time
        self.close_reason = reason
        self.pnl = pnl
        self.pnl_percent = (pnl / self.total_volume) * 100 if self.total_volume > 0 else 0.0

    def _recalculate(self) -> None:
        total_volume = sum(o.volume for o in self.orders)
        total_coins = sum(o.coins for o in self.orders)
        self.total_volume = total_volume
        self.avg_price = total_volume / total_coins if total_coins > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "status": self.status.value,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
            "avg_price": self.avg_price,
            "total_volume": self.total_volume,
            "exit_price": self.exit_price,
            "close_reason": self.close_reason.value if self.close_reason else None,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "max_drawdown_percent": self.max_drawdown_percent,
            "dca_level_reached": self.dca_level_reached,
            "orders": [o.to_dict() for o in self.orders],
        }
