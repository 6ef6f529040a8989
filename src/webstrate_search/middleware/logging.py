"""Request logging middleware."""
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Probes hit these every few seconds.
QUIET_PATHS = frozenset({"/health/live", "/health/ready"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs one http_request event.

    The id is bound to the structlog context for the duration of the
    request, so the route's own events (search_request, search_failed)
    carry it too. A caller-supplied X-Request-ID is reused.

    The query string is never logged here; search terms are only logged
    by the search route, next to the caller's identity.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            if request.url.path not in QUIET_PATHS:
                session = request.scope.get("session") or {}
                logger.info(
                    "http_request",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=round(duration_ms, 2),
                    authenticated="passport" in session,
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
