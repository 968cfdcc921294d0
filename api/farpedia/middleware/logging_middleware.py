import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from farpedia.metrics import http_request_duration, http_requests

log = structlog.get_logger()


def _route_path(request: Request) -> str:
    # Route template ("/api/v1/articles/{slug}") keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.monotonic() - start
            log.error("request_failed", duration_ms=round(duration * 1000, 2))
            raise

        duration = time.monotonic() - start
        status_code = response.status_code

        route_path = _route_path(request)
        http_requests.labels(method=request.method, path=route_path, status_code=str(status_code)).inc()
        http_request_duration.labels(method=request.method, path=route_path).observe(duration)

        log.info(
            "request_completed",
            status_code=status_code,
            duration_ms=round(duration * 1000, 2),
            fid=getattr(request.state, "fid", None),
        )

        response.headers["X-Request-ID"] = request_id
        return response
