# shop_api/core/rate_limiter.py
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request

from shop_api.core.config import RATE_LIMIT_ENABLED, RATE_LIMIT_WRITE

# In-memory storage; pass storage_uri="redis://..." when running several workers
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

# Applied to every mutating route
WRITE_LIMIT = RATE_LIMIT_WRITE


def get_rate_limiter() -> Limiter:
    return limiter


def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "Too Many Requests",
            "message": f"Rate limit exceeded: {exc.detail}",
        },
    )
