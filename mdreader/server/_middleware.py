"""HTTP middleware for the mdreader server."""

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and elapsed time of every request."""

    async def dispatch(self, request: Request, call_next):
        t_start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info(
            f"{request.method} {request.url.path}"
            f" -> {response.status_code}"
            f" ({elapsed_ms:.1f} ms)"
            f" client={request.client.host if request.client else '-'}"
        )
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects POST/PUT bodies larger than max_size bytes with 413.

    Only the declared Content-Length is checked.
    """

    def __init__(self, app: ASGIApp, max_size: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT"):
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit():
                size = int(content_length)
                if size > self.max_size:
                    logger.warning(f"Rejected {request.method} {request.url.path}: body of {size} bytes")
                    return Response(
                        content=f'{{"detail": "Request body too large: {size} > {self.max_size} bytes"}}',
                        status_code=413,
                        media_type="application/json",
                    )
        return await call_next(request)
