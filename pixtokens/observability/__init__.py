"""
Observability module - Logging, Metrics, and Tracing.
"""

from pixtokens.observability.logging import get_logger, log_context, setup_logging
from pixtokens.observability.metrics import metrics
from pixtokens.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
