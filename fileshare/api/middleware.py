"""
API Middleware: Cross-Cutting Concerns

Provides:
- RequestSizeLimitMiddleware: Reject oversized uploads before the store
- RequestLoggingMiddleware: Request-scoped log context and HTTP metrics
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from fileshare.api.router import Handler, Request, Response
from fileshare.core import constants as C
from fileshare.observability.logging import StructuredLogger
from fileshare.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware:
    """
    Request body ceiling.

    Checks both the declared Content-Length and the received body, and
    answers 413 without invoking the handler.
    """

    __slots__ = ("_max_bytes",)

    def __init__(self, max_bytes: int = C.MAX_REQUEST_BODY_BYTES) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self._max_bytes = max_bytes

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    async def __call__(
        self,
        request: Request,
        handler: Handler,
    ) -> Response:
        """Enforce the body limit."""
        declared = request.content_length
        size = max(len(request.body), declared or 0)

        if size > self._max_bytes:
            logger.warning(
                "Rejected %s %s: body of %d bytes exceeds %d",
                request.method,
                request.path,
                size,
                self._max_bytes,
            )
            return Response.json(
                {
                    "error": "Request body too large",
                    "max_bytes": self._max_bytes,
                },
                status=413,
            )

        return await handler(request)


class RequestLoggingMiddleware:
    """
    Request logging and metrics middleware.

    Runs the rest of the chain inside a log context carrying a request id,
    so store-level log lines can be correlated with the request.
    """

    __slots__ = ("_request_counter", "_request_latency")

    def __init__(self, metrics: Optional[MetricsCollector] = None) -> None:
        metrics = metrics or MetricsCollector.get_instance()

        self._request_counter = metrics.counter(
            "http_requests_total",
            label_names=["method", "status"],
            help_text="HTTP requests by method and status",
        )
        self._request_latency = metrics.histogram(
            "http_request_duration_seconds",
            label_names=["method"],
            help_text="HTTP request latency",
        )

    async def __call__(
        self,
        request: Request,
        handler: Handler,
    ) -> Response:
        """Log the request and record metrics."""
        request_id = request.header("x-request-id") or uuid.uuid4().hex
        status = 500
        start_time = time.perf_counter()

        with StructuredLogger.context(
            request_id=request_id,
            method=request.method,
            path=request.path,
        ):
            try:
                response = await handler(request)
                status = response.status
                response.headers.setdefault("x-request-id", request_id)
                return response
            finally:
                duration = time.perf_counter() - start_time
                self._request_counter.inc(method=request.method, status=str(status))
                self._request_latency.observe(duration, method=request.method)
                logger.info(
                    "%s %s -> %d",
                    request.method,
                    request.path,
                    status,
                    extra={"status": status, "duration_ms": round(duration * 1000, 3)},
                )
