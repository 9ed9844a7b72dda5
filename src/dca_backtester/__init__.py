"""
DCA Backtester - leveraged DCA grid strategy backtesting and tuning.

Provides:
- Synthetic 4h market data per asset (anchor-driven price paths)
- Technical indicators (CCI, CMO, Williams %R, ADX, Turtle channel, ATR)
- DCA grid backtest with smart entry, averaging ladder and Turtle/TP exit
- Per-asset genetic optimization of the exit and entry knobs
- Portfolio-wide runs, reports and YAML/JSON preset export
- FastAPI REST service and a command-line interface
"""

__version__ = "1.0.0"
