from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from leadflow.metrics import observe_http_request, resolve_http_path_label

logger = logging.getLogger("leadflow.request")


def _record(method: str, path: str, status_code: int, started: float, *, failed: bool = False) -> None:
    duration = time.perf_counter() - started
    observe_http_request(method=method, path=path, status=status_code, duration=duration)
    extra = {"method": method, "path": path, "status_code": status_code, "duration_ms": round(duration * 1000, 2)}
    if failed:
        logger.error("http.error", exc_info=True, extra=extra)
    else:
        logger.info("http.request", extra=extra)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log and HTTP metrics, labelled by route template rather than raw path."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        path = resolve_http_path_label(request)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _record(request.method, path, 500, started, failed=True)
            raise
        _record(request.method, path, response.status_code, started)
        return response
