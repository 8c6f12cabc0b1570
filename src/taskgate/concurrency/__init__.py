"""
Concurrency limiting for taskgate

Provides the Limiter gate that admits a bounded number of async tasks at once
and queues the rest in arrival order.
"""

from .errors import InvalidConcurrency, QueueCleared, TaskGateError
from .limiter import (
    UNBOUNDED,
    Limiter,
    LimiterStats,
    limit_function,
    validate_concurrency,
)

__all__ = [
    "Limiter",
    "LimiterStats",
    "UNBOUNDED",
    "limit_function",
    "validate_concurrency",
    "InvalidConcurrency",
    "QueueCleared",
    "TaskGateError",
]
