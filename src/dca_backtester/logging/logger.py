"""
Structured logging for backtest and optimizer runs.

Library modules only call ``get_logger(__name__)``; the CLI and the API
lifespan call ``setup_logging`` once at startup.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

LOG_FILE_NAME = "dca_backtester.log"
ERROR_LOG_FILE_NAME = "error.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("asyncio", "urllib3", "uvicorn.access", "httpx")


def _rotating_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _build_handlers(
    level: int,
    log_dir: Path,
    log_to_console: bool,
    log_to_file: bool,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if log_to_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        handlers.append(console)

    if log_to_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating_handler(log_dir / LOG_FILE_NAME, level))
        handlers.append(_rotating_handler(log_dir / ERROR_LOG_FILE_NAME, logging.ERROR))

    return handlers


def _build_processors(json_logs: bool, colors: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=colors,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    log_to_console: bool = True,
    log_to_file: bool = False,
    json_logs: bool = False,
) -> None:
    """
    Configure structlog and the stdlib handlers behind it.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating log files (default: ./logs)
        log_to_console: Whether to log to stderr
        log_to_file: Whether to write rotating log files
        json_logs: Render events as JSON instead of console key=value
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    handlers = _build_handlers(
        level,
        log_dir if log_dir is not None else Path("logs"),
        log_to_console,
        log_to_file,
    )

    structlog.configure(
        processors=_build_processors(json_logs, colors=log_to_console and not log_to_file and sys.stderr.isatty()),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance for a module."""
    return structlog.get_logger(name)


class log_context:
    """Bind key-value pairs to every log event emitted inside the block."""

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
