"""Structured logging for the DCA backtester."""

from dca_backtester.logging.logger import get_logger, log_context, setup_logging

__all__ = ["get_logger", "setup_logging", "log_context"]
