"""Request-scoped middleware for API requests."""

import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an ID and logs its outcome.

    An incoming X-Request-ID header is kept so a caller can correlate its
    own logs; otherwise a new ID is generated.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "%s %s -> %d (%.1f ms) request_id=%s",
            request.method, request.url.path, response.status_code, elapsed_ms, request_id,
        )
        return response
