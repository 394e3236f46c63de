# shop_api/core/security.py
import secrets
from typing import Optional

from fastapi import Depends, Request, status
from fastapi.security import APIKeyHeader
from loguru import logger

from shop_api.core import config
from shop_api.core.errors import api_error

# auto_error=False: a missing key must answer 401 with our own envelope
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


def verify_api_key(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def require_api_key(
    request: Request,
    api_key: Optional[str] = Depends(api_key_header),
) -> str:
    """
    Gate for create/update/delete routes.

    The key is read from ``x-api-key``; the raw ``Authorization`` header is
    accepted as a fallback. Missing -> 401, present but wrong -> 403.
    """
    presented = api_key or request.headers.get("Authorization")
    request_id = getattr(request.state, "request_id", "N/A")

    if not presented:
        logger.warning(f"RID:{request_id} API key missing for {request.method} {request.url.path}.")
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "API key is required")

    if not verify_api_key(presented, config.API_KEY):
        logger.warning(f"RID:{request_id} Invalid API key for {request.method} {request.url.path}.")
        raise api_error(status.HTTP_403_FORBIDDEN, "Forbidden", "Invalid API key")

    return presented
