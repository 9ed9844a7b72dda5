"""
FastAPI application factory for the DCA backtesting service.

Provides REST API for:
- Running single-asset backtests
- Running per-asset GA optimization
- Listing tradable coins
- Health checks
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from dca_backtester import __version__
from dca_backtester.caching.indicator_cache import IndicatorCache
from dca_backtester.config import Settings
from dca_backtester.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and shared caches."""
    settings = Settings.from_env()
    setup_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        log_to_file=settings.log_dir is not None,
        log_dir=settings.log_dir,
    )

    app.state.settings = settings
    app.state.indicator_cache = IndicatorCache()

    logger.info(
        "Backtesting service started",
        auth_enabled=settings.api_key is not None,
        log_dir=str(settings.log_dir) if settings.log_dir else None,
    )

    yield

    logger.info("Backtesting service stopped", cache=app.state.indicator_cache.stats)


async def _invalid_input_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("Rejected request", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="DCA Backtesting Service",
        description="Leveraged DCA grid backtesting and per-asset optimization",
        version=__version__,
        lifespan=lifespan,
    )
    # pydantic.ValidationError is a ValueError subclass
    app.add_exception_handler(ValueError, _invalid_input_handler)

    from dca_backtester.api.routes import router
    app.include_router(router)

    return app
