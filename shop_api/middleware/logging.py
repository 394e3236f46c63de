# shop_api/middleware/logging.py
import time
import uuid
from typing import Callable, Awaitable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a request id that is also bound into all log records it emits."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Honour an upstream id (load balancer, client) if one was sent
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start_time = time.perf_counter()
        client = f"{request.client.host}:{request.client.port}" if request.client else "unknown"

        with logger.contextualize(request_id=request_id):
            logger.info(f"START {request.method} {request.url.path} Client:{client}")
            try:
                response = await call_next(request)
            except Exception as e:
                duration = (time.perf_counter() - start_time) * 1000
                logger.opt(exception=e).error(
                    f"FAILED {request.method} {request.url.path} Error:{e!r} Duration:{duration:.2f}ms"
                )
                raise

            duration = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"END {request.method} {request.url.path} Status:{response.status_code} Duration:{duration:.2f}ms"
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
