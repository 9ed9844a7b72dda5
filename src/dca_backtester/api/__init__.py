"""REST API for the DCA backtesting service."""

from dca_backtester.api.app import create_app

__all__ = ["create_app"]
