"""
DcaBacktestSimulator: leveraged DCA grid backtest over a candle frame.

Per candle (after a 50-candle indicator warm-up):
- no open trade: enter on a wick dip or on the CCI + CMO + Williams %R filter
- open trade: fill the next grid level when the low reaches it, then exit
  when the high reaches max(TP price, previous Turtle upper band)

A trade still open at the last candle is closed at the last close, so every
run ends fully realized. Capital math is relative to the asset's allocated
slice (``initial_capital * bot_allocation%``).
"""

import time
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from dca_backtester.caching.indicator_cache import IndicatorCache
from dca_backtester.core import indicators
from dca_backtester.core.market_simulator import generate_candles
from dca_backtester.core.trade import (
    BASE_ORDER_REASON,
    CloseReason,
    OrderSide,
    Trade,
    TradeOrder,
    dca_reason,
)
from dca_backtester.engine import statistics as stats
from dca_backtester.engine.models import (
    DCA_DISTRIBUTION_SIZE,
    BacktestResult,
    DrawdownPoint,
    EquityPoint,
    StrategyConfig,
)
from dca_backtester.logging import get_logger

logger = get_logger(__name__)

WARMUP_CANDLES = 50
SMART_ENTRY_LOOKBACK = 20
SMART_ENTRY_DROP = 0.15
SMART_ENTRY_WILLIAMS = -95.0
DIP_WICK_RATIO = 0.03
DIP_FILL_MARKUP = 1.01
MIN_ORDER_NOTIONAL = 1.0

REQUIRED_COLUMNS = ("time", "open", "high", "low", "close")


@dataclass
class _Signals:
    """Indicator arrays (as lists) the strategy reads per candle."""

    cci: list[float]
    cmo: list[float]
    williams: list[float]
    turtle_upper: list[float]
    prior_high: list[float]


@dataclass
class _Ledger:
    """Mutable run state, owned by a single ``run`` call."""

    equity: float
    fees: float = 0.0
    trades: list[Trade] = field(default_factory=list)
    active: Trade | None = None


class DcaBacktestSimulator:
    """
    Runs the DCA grid strategy on OHLCV candles.

    Usage:
        config = StrategyConfig(leverage=10)
        simulator = DcaBacktestSimulator(config)
        result = simulator.run(candles_df, symbol="ADA")
    """

    def __init__(
        self,
        config: StrategyConfig,
        indicator_cache: IndicatorCache | None = None,
    ) -> None:
        self.config = config
        self.indicator_cache = indicator_cache

    def run(self, candles: pd.DataFrame | None, symbol: str = "UNKNOWN") -> BacktestResult:
        """Run the backtest. Empty data yields a zeroed result."""
        start_time = time.perf_counter()
        config = self.config

        if candles is None or len(candles) == 0:
            logger.warning("No candle data, returning empty result", symbol=symbol)
            return BacktestResult.empty(symbol, config)

        missing = set(REQUIRED_COLUMNS) - set(candles.columns)
        if missing:
            raise ValueError(f"Missing columns: {sorted(missing)}")

        logger.debug(
            "Starting DCA backtest",
            symbol=symbol,
            candles=len(candles),
            tp_percent=config.tp_percent,
            turtle_period=config.turtle_period,
            smart_entry=config.smart_entry,
        )

        times = candles["time"].astype("int64").tolist()
        opens = candles["open"].to_numpy(dtype=float).tolist()
        highs = candles["high"].to_numpy(dtype=float).tolist()
        lows = candles["low"].to_numpy(dtype=float).tolist()
        closes = candles["close"].to_numpy(dtype=float).tolist()
        weekdays = pd.to_datetime(candles["time"], unit="ms", utc=True).dt.dayofweek.tolist()
        signals = self._signals(candles)

        allocated = config.allocated_capital
        ledger = _Ledger(equity=allocated)

        equity_curve: list[EquityPoint] = []
        drawdown_curve: list[DrawdownPoint] = []
        buy_and_hold_curve: list[EquityPoint] = []
        daily_returns: list[float] = []

        peak_equity = allocated
        last_day_equity = allocated
        current_day = weekdays[0]
        bh_coins = allocated / closes[0] if closes[0] > 0 else 0.0
        trading_allowed = not config.smart_entry

        for i in range(len(closes)):
            ts = times[i]

            if not trading_allowed and i > WARMUP_CANDLES:
                trading_allowed = self._smart_entry_triggered(
                    signals.prior_high[i], closes[i], signals.williams[i],
                )

            unrealized = ledger.active.unrealized_pnl(closes[i]) if ledger.active else 0.0
            total_equity = ledger.equity + unrealized

            # Daily returns are sampled whenever the weekday changes
            if weekdays[i] != current_day:
                if last_day_equity != 0:
                    daily_returns.append((total_equity - last_day_equity) / last_day_equity)
                last_day_equity = total_equity
                current_day = weekdays[i]

            buy_and_hold_curve.append(EquityPoint(time=ts, equity=stats.safe(bh_coins * closes[i])))

            if i >= WARMUP_CANDLES:
                peak_equity = max(peak_equity, total_equity)
                dd = (peak_equity - total_equity) / peak_equity * 100 if peak_equity > 0 else 0.0
                equity_curve.append(EquityPoint(time=ts, equity=stats.safe(total_equity)))
                drawdown_curve.append(DrawdownPoint(time=ts, drawdown=stats.safe(dd)))

            if i < WARMUP_CANDLES or not trading_allowed:
                continue

            if ledger.active is not None:
                self._fill_next_level(ledger, lows[i], ts)
                ledger.active.track_drawdown(lows[i])
                self._check_exit(ledger, highs[i], signals.turtle_upper[i - 1], ts)
            else:
                self._check_entry(ledger, symbol, i, opens[i], lows[i], closes[i], ts, signals)

        if ledger.active is not None:
            self._close_at_end(ledger, closes[-1], times[-1])

        result = self._build_result(
            symbol=symbol,
            ledger=ledger,
            candle_count=len(closes),
            equity_curve=equity_curve,
            drawdown_curve=drawdown_curve,
            buy_and_hold_curve=buy_and_hold_curve,
            daily_returns=daily_returns,
            duration=time.perf_counter() - start_time,
        )

        logger.info(
            "Backtest completed",
            symbol=symbol,
            candles=result.candles_processed,
            trades=result.total_trades,
            net_profit_pct=round(result.net_profit_percent, 2),
            max_drawdown=round(result.max_drawdown, 2),
            score=result.strategy_score,
            duration_s=round(result.duration_seconds, 3),
        )
        return result

    # =========================================================================
    # Indicators
    # =========================================================================

    def _signals(self, candles: pd.DataFrame) -> _Signals:
        config = self.config
        closes = candles["close"].to_numpy(dtype=float)
        data_hash = IndicatorCache.hash_candles(candles) if self.indicator_cache is not None else ""

        def cached(name: str, compute, **params):
            if self.indicator_cache is None:
                return compute()
            key = IndicatorCache.make_key(name, data_hash, **params)
            return self.indicator_cache.get_or_compute(key, compute)

        cci = cached("cci", lambda: indicators.cci(candles, config.cci_period), period=config.cci_period)
        cmo = cached("cmo", lambda: indicators.cmo(closes, config.cmo_period), period=config.cmo_period)
        williams = cached(
            "williams_r",
            lambda: indicators.williams_r(candles, config.williams_period),
            period=config.williams_period,
        )
        turtle = cached(
            "turtle",
            lambda: indicators.turtle_channels(candles, config.turtle_period),
            period=config.turtle_period,
        )
        prior_high = cached(
            "prior_high",
            lambda: (
                candles["high"].astype(float)
                .rolling(SMART_ENTRY_LOOKBACK).max().shift(1)
                .fillna(0.0).to_numpy()
            ),
            lookback=SMART_ENTRY_LOOKBACK,
        )

        return _Signals(
            cci=np.asarray(cci).tolist(),
            cmo=np.asarray(cmo).tolist(),
            williams=np.asarray(williams).tolist(),
            turtle_upper=np.asarray(turtle.upper).tolist(),
            prior_high=np.asarray(prior_high).tolist(),
        )

    # =========================================================================
    # Strategy Steps
    # =========================================================================

    @staticmethod
    def _smart_entry_triggered(recent_high: float, close: float, williams: float) -> bool:
        """Allow trading after a >15% drop from the recent high or a deep Williams %R."""
        drop = (recent_high - close) / recent_high if recent_high > 0 else 0.0
        return drop > SMART_ENTRY_DROP or williams < SMART_ENTRY_WILLIAMS

    def _check_entry(
        self,
        ledger: _Ledger,
        symbol: str,
        i: int,
        open_: float,
        low: float,
        close: float,
        ts: int,
        signals: _Signals,
    ) -> None:
        config = self.config

        body_low = min(open_, close)
        is_dip = body_low > 0 and (body_low - low) / body_low > DIP_WICK_RATIO
        filters_pass = (
            signals.cci[i] < config.cci_threshold
            and signals.cmo[i] > config.cmo_threshold
            and signals.williams[i] < config.williams_threshold
        )
        if not (is_dip or filters_pass):
            return

        max_position = config.allocated_capital * config.leverage
        volume = max_position * (config.volume_weights[0] / sum(config.volume_weights))
        if volume <= MIN_ORDER_NOTIONAL:
            return

        raw_price = low * DIP_FILL_MARKUP if is_dip else close
        price = raw_price * (1 + config.slippage / 100)
        fee = volume * (config.commission / 100)
        ledger.equity -= fee
        ledger.fees += fee

        ledger.active = Trade.open(
            trade_id=f"tr-{i}",
            symbol=symbol,
            base_order=TradeOrder(
                price=price,
                volume=volume,
                fee=fee,
                time=ts,
                side=OrderSide.BUY,
                reason=BASE_ORDER_REASON,
            ),
        )

    def _fill_next_level(self, ledger: _Ledger, low: float, ts: int) -> None:
        """Fill at most one grid level per candle."""
        config = self.config
        trade = ledger.active
        level = trade.dca_level_reached + 1
        if level >= len(config.grid_steps):
            return

        trigger = trade.first_fill_price * (1 - config.grid_steps[level] / 100)
        if low > trigger:
            return

        volume = trade.base_volume * (config.volume_weights[level] / config.volume_weights[0])
        fee = volume * (config.commission / 100)
        ledger.equity -= fee
        ledger.fees += fee

        trade.add_order(TradeOrder(
            price=trigger * (1 + config.slippage / 100),
            volume=volume,
            fee=fee,
            time=ts,
            side=OrderSide.BUY,
            reason=dca_reason(level),
        ))

    def _check_exit(self, ledger: _Ledger, high: float, turtle_high: float, ts: int) -> None:
        config = self.config
        trade = ledger.active
        # A Turtle band still in warm-up is 0, so the TP price alone sets the trigger
        trigger = max(trade.avg_price * (1 + config.tp_percent / 100), turtle_high)
        if high < trigger:
            return
        self._realize(ledger, trigger * (1 - config.slippage / 100), ts, CloseReason.TAKE_PROFIT)

    def _close_at_end(self, ledger: _Ledger, last_close: float, ts: int) -> None:
        exit_price = last_close * (1 - self.config.slippage / 100)
        self._realize(ledger, exit_price, ts, CloseReason.END_OF_DATA)

    def _realize(self, ledger: _Ledger, exit_price: float, ts: int, reason: CloseReason) -> None:
        trade = ledger.active
        revenue = trade.position_value(exit_price)
        fee = revenue * (self.config.commission / 100)
        profit = revenue - trade.total_volume - fee

        ledger.equity += profit
        ledger.fees += fee
        trade.close(exit_price=exit_price, exit_time=ts, pnl=profit, reason=reason)
        ledger.trades.append(trade)
        ledger.active = None

    # =========================================================================
    # Result
    # =========================================================================

    def _build_result(
        self,
        symbol: str,
        ledger: _Ledger,
        candle_count: int,
        equity_curve: list[EquityPoint],
        drawdown_curve: list[DrawdownPoint],
        buy_and_hold_curve: list[EquityPoint],
        daily_returns: list[float],
        duration: float,
    ) -> BacktestResult:
        config = self.config
        allocated = config.allocated_capital
        trades = ledger.trades
        pnls = [t.pnl for t in trades]

        total_profit = ledger.equity - allocated
        net_profit_pct = stats.safe(total_profit / allocated * 100) if allocated > 0 else 0.0
        max_dd = max([0.0] + [p.drawdown for p in drawdown_curve])
        recovery = stats.recovery_factor(net_profit_pct, max_dd)
        sharpe = stats.sharpe_ratio(daily_returns)
        cagr = stats.cagr_percent(ledger.equity, allocated, stats.elapsed_years(candle_count))

        exited = [t for t in trades if t.close_reason == CloseReason.TAKE_PROFIT]
        distribution = [0] * DCA_DISTRIBUTION_SIZE
        for t in exited:
            if t.dca_level_reached < DCA_DISTRIBUTION_SIZE:
                distribution[t.dca_level_reached] += 1

        bh_final = buy_and_hold_curve[-1].equity if buy_and_hold_curve else allocated

        return BacktestResult(
            symbol=symbol,
            config=config,
            trades=tuple(trades),
            equity_curve=tuple(equity_curve),
            drawdown_curve=tuple(drawdown_curve),
            buy_and_hold_curve=tuple(buy_and_hold_curve),
            total_profit=stats.safe(total_profit),
            net_profit_percent=net_profit_pct,
            max_drawdown=stats.safe(max_dd),
            win_rate=stats.win_rate(pnls),
            profit_factor=stats.profit_factor(pnls),
            recovery_factor=recovery,
            sharpe_ratio=sharpe,
            sortino_ratio=stats.sortino_ratio(daily_returns),
            calmar_ratio=stats.calmar_ratio(cagr, max_dd),
            sqn=stats.system_quality_number(pnls),
            strategy_score=stats.strategy_score(sharpe, recovery, max_dd, total_profit),
            total_trades=len(trades),
            max_dca_level=max([0] + [t.dca_level_reached for t in trades]),
            final_equity=stats.safe(ledger.equity),
            avg_hold_time_hrs=stats.safe(stats.mean([t.hold_time_hours for t in exited])),
            daily_profit=0.0,
            total_fees=stats.safe(ledger.fees),
            buy_and_hold_profit=stats.safe(bh_final - allocated),
            dca_distribution=tuple(distribution),
            candles_processed=candle_count,
            duration_seconds=duration,
        )


def run_backtest(
    symbol: str,
    config: StrategyConfig,
    candles: pd.DataFrame | None = None,
    indicator_cache: IndicatorCache | None = None,
) -> BacktestResult:
    """Backtest ``config`` on ``candles``, generating synthetic candles when none are given."""
    if candles is None:
        candles = generate_candles(symbol)
    return DcaBacktestSimulator(config, indicator_cache=indicator_cache).run(candles, symbol=symbol)
