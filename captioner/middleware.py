# ─────────────────────────────────────────────────────────────────────────────
# Request Middleware — request ID, log context, timing
# ─────────────────────────────────────────────────────────────────────────────
# Every log line emitted while a request is in flight carries its
# request_id (bound through structlog contextvars). A caller-supplied
# X-Request-ID is kept so IDs line up across a proxy and this service.
# ─────────────────────────────────────────────────────────────────────────────


import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"

# Probe and scrape traffic: timed and tagged, never logged.
_QUIET_PREFIXES = ("/health", "/metrics")


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return incoming[:64] if incoming else uuid.uuid4().hex[:8]


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request_id into the log context and reports handling time."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 1)

        path = request.url.path
        if not path.startswith(_QUIET_PREFIXES):
            logger.info(
                "request_completed",
                method=request.method,
                path=path,
                status=response.status_code,
                duration_ms=elapsed_ms,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = str(elapsed_ms)
        return response
