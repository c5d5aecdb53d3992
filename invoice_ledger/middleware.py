"""
HTTP middleware for request correlation and latency logging.

- **Request ID**: every request/response carries an ``X-Request-ID``; the id
  is also put in ``request_id_ctx`` so every log line written while serving
  the request (including the ledger's INFO/WARNING audit lines) carries it.
- **Request timing**: logs the wall-clock duration of every request and
  returns it as ``X-Process-Time``.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from invoice_ledger.core.logging import request_id_ctx

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

SLOW_REQUEST_MS = 500


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Reuse the caller's ``X-Request-ID`` or generate a UUID4, expose it on
    ``request.state.request_id`` and echo it back on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Adds ``X-Process-Time``; requests slower than 500 ms are logged at WARNING."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"

        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "elapsed_ms": round(elapsed_ms, 2),
        }
        if elapsed_ms > SLOW_REQUEST_MS:
            logger.warning(
                "%s %s completed in %.2fms (SLOW)",
                request.method,
                request.url.path,
                elapsed_ms,
                extra=extra,
            )
        else:
            logger.debug(
                "%s %s completed in %.2fms",
                request.method,
                request.url.path,
                elapsed_ms,
                extra=extra,
            )

        return response
