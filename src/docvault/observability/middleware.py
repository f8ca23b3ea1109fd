"""HTTP middleware: request correlation ids and per-request telemetry.

``RequestIdMiddleware`` accepts a well-formed ``X-Request-ID`` (or mints a
UUID), exposes it on ``request.state.request_id`` and to every log line of
the request, and echoes it on the response.

``RequestTelemetryMiddleware`` times each request once and feeds both the
Prometheus HTTP metrics and a ``request_completed`` log line.

Both only ever see the path after ``normalize_path``: grant ids sit in
share-link URLs and must not become metric labels or log fields.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL

logger = get_logger(__name__)

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9\-]{8,128}$")

_ID_SEGMENTS = (
    (re.compile(r"^/api/v1/shares/link/[^/]+"), "/api/v1/shares/link/{grant}"),
    (re.compile(r"^/api/v1/shares/(?!expiring$|link/)[^/]+$"), "/api/v1/shares/{grant}"),
    (re.compile(r"^/api/v1/access-logs/stats/documents/[^/]+$"),
     "/api/v1/access-logs/stats/documents/{document}"),
    (re.compile(r"^/api/v1/access-logs/(?!stats/)[^/]+$"), "/api/v1/access-logs/{log}"),
)


def normalize_path(path: str) -> str:
    """Replace the id segment of a known route with a placeholder."""
    for pattern, template in _ID_SEGMENTS:
        path, hits = pattern.subn(template, path, count=1)
        if hits:
            break
    return path


class RequestIdMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming = request.headers.get("x-request-id", "")
        rid = incoming if _REQUEST_ID_RE.match(incoming) else str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers["X-Request-ID"] = rid
        return response


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """Count, time, and log every request under its normalized path."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        method = request.method
        path = normalize_path(request.url.path)
        status = 500
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            elapsed = time.perf_counter() - start
            HTTP_REQUESTS_TOTAL.labels(
                method=method, path=path, status=str(status),
            ).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=method, path=path,
            ).observe(elapsed)
            log = logger.warning if status >= 500 else logger.info
            log(
                "request_completed",
                method=method,
                path=path,
                status=status,
                duration_ms=round(elapsed * 1000, 2),
            )
