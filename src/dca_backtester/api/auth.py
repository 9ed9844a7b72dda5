"""
X-API-Key check for the backtesting endpoints.

The expected key is ``Settings.api_key`` (``DCA_BACKTESTER_API_KEY``), read
once by the app lifespan. With no key configured every request is served.
"""

import hmac
from typing import Annotated

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from dca_backtester.config import API_KEY_ENV, Settings
from dca_backtester.logging import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
ANONYMOUS = "anonymous"

__all__ = ["API_KEY_ENV", "API_KEY_HEADER", "ANONYMOUS", "verify_api_key"]


def _expected_key(request: Request) -> str | None:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = Settings.from_env()
    return settings.api_key


async def verify_api_key(
    request: Request,
    api_key: Annotated[str | None, Security(API_KEY_HEADER)],
) -> str:
    """Return the caller's key, or ``ANONYMOUS`` when auth is disabled."""
    expected = _expected_key(request)
    if expected is None:
        return ANONYMOUS

    if api_key is None or not hmac.compare_digest(api_key.encode(), expected.encode()):
        logger.warning("Rejected API key", path=request.url.path, provided=api_key is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return api_key
