"""
Observability module: Metrics and structured logging.
"""

from fileshare.observability.metrics import MetricsCollector, Counter, Gauge, Histogram
from fileshare.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    LogLevel,
    setup_logging,
)

__all__ = [
    "MetricsCollector",
    "Counter",
    "Gauge",
    "Histogram",
    "StructuredLogger",
    "JsonFormatter",
    "LogLevel",
    "setup_logging",
]
