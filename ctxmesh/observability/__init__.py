"""
Observability module: Metrics and structured logging.
"""

from ctxmesh.observability.metrics import MetricsCollector, Counter, Gauge, Histogram
from ctxmesh.observability.logging import (
    JsonFormatter,
    StructuredLogger,
    LogLevel,
    setup_logging,
)

__all__ = [
    "MetricsCollector",
    "Counter",
    "Gauge",
    "Histogram",
    "JsonFormatter",
    "StructuredLogger",
    "LogLevel",
    "setup_logging",
]
