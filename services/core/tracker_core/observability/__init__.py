"""Observability package for logging and metrics."""

from tracker_core.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    RunContext,
    get_logger,
    configure_logging,
)
from tracker_core.observability.metrics import (
    MetricsCollector,
    get_collector,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "RunContext",
    "get_logger",
    "configure_logging",
    "MetricsCollector",
    "get_collector",
]
