"""
Observability module for taskgate

Provides OpenTelemetry tracing and Prometheus metrics collection for
monitoring limiter activity.
"""

from .config import TelemetryConfig
from .init import (
    initialize_observability,
    is_observability_initialized,
    shutdown_observability,
)
from .metrics import MetricsCollector, get_metrics, initialize_metrics
from .tracer import get_tracer, trace_async, trace_operation

__all__ = [
    "TelemetryConfig",
    "get_tracer",
    "trace_operation",
    "trace_async",
    "get_metrics",
    "initialize_metrics",
    "MetricsCollector",
    "initialize_observability",
    "shutdown_observability",
    "is_observability_initialized",
]
