"""
Access logging for the scheduling API.

Each request gets a short correlation id, echoed in X-Correlation-ID, and its
duration in X-Response-Time-Ms. Only method, path, status and timing are
logged; request and response bodies carry patient data and are never read.
"""

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation ids and one access log line per request."""

    SILENT_PREFIXES: tuple[str, ...] = ("/health",)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex[:8]
        request.state.correlation_id = correlation_id
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[{correlation_id}] {route} raised after {self._elapsed_ms(started):.2f}ms")
            raise

        elapsed = self._elapsed_ms(started)
        if not request.url.path.startswith(self.SILENT_PREFIXES):
            logger.log(
                logging.WARNING if response.status_code >= 400 else logging.INFO,
                f"[{correlation_id}] {route} -> {response.status_code} ({elapsed:.2f}ms)",
            )

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time-Ms"] = f"{elapsed:.2f}"
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000
