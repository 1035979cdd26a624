"""Per-request structured log lines."""

import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

# Probes hit these constantly; they are not worth a log line each.
QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready"})


def webhook_source(path: str) -> str | None:
    """Return the integration name for webhook paths (``/webhook/<source>``)."""
    parts = [p for p in path.split("/") if p]
    if "webhook" in parts:
        index = parts.index("webhook")
        if index + 1 < len(parts):
            return parts[index + 1]
    return None


class LoggingMiddleware(BaseHTTPMiddleware):
    """Bind request context to structlog and log start, end and failures."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_id = getattr(request.state, "request_id", "unknown")

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
            client_ip=request.client.host if request.client else "unknown",
        )
        source = webhook_source(path)
        if source:
            structlog.contextvars.bind_contextvars(webhook_source=source)

        logger.info("request_started")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "request_failed",
                error=str(exc),
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Process-Time"] = str(duration_ms)
        return response
