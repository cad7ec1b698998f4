"""
API module: HTTP interface for file share operations.

``build_app(config)`` wires a name store and an id store behind one router:

    app = build_app(FileShareConfig())
    response = await app.dispatch(Request.from_raw("GET", "/files/a.txt", {}))
"""

from __future__ import annotations

from typing import Optional

from fileshare.api.handlers import ContentHandler, status_for
from fileshare.api.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from fileshare.api.router import FileShareRouter, Request, Response
from fileshare.core.config import FileShareConfig
from fileshare.core.errors import ConfigurationError
from fileshare.observability.metrics import MetricsCollector
from fileshare.storage.content_store import ContentStore


def build_app(
    config: FileShareConfig,
    metrics: Optional[MetricsCollector] = None,
) -> FileShareRouter:
    """
    Build the routed application for ``config``.

    Raises:
        ConfigurationError: If the configuration does not validate
    """
    validation = config.validate()
    if validation.is_err():
        raise ConfigurationError.invalid(validation.error)

    if not config.observability.metrics_enabled:
        # Private registry, never exported
        metrics = MetricsCollector()
    metrics = metrics or MetricsCollector.get_instance()

    router = FileShareRouter()
    router.use(RequestLoggingMiddleware(metrics))
    router.use(RequestSizeLimitMiddleware(config.api.max_request_body_bytes))

    names = ContentStore.for_names(config.storage, metrics)
    ids = ContentStore.for_ids(config.storage, metrics)
    ContentHandler(names).register(router, config.api.names_prefix)
    ContentHandler(ids, generate_ids=True).register(router, config.api.ids_prefix)

    return router


__all__ = [
    "build_app",
    "FileShareRouter",
    "Request",
    "Response",
    "ContentHandler",
    "RequestLoggingMiddleware",
    "RequestSizeLimitMiddleware",
    "status_for",
]
