"""
Observability module - Logging, Metrics, and Tracing.
"""

from timeless.observability.logging import get_logger, log_context, setup_logging
from timeless.observability.metrics import metrics
from timeless.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
