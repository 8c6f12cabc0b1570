"""
taskgate - concurrency-limiting task gate for asyncio

Admits at most a configurable number of async tasks to run at once and queues
the rest in arrival order, with a ceiling that can be changed at runtime.
"""

__version__ = "0.1.0"

# Core API exports
from .concurrency import (
    UNBOUNDED,
    InvalidConcurrency,
    Limiter,
    LimiterStats,
    QueueCleared,
    TaskGateError,
    limit_function,
)
from .config import TaskGateConfig, get_config, set_config

__all__ = [
    "Limiter",
    "LimiterStats",
    "UNBOUNDED",
    "limit_function",
    "InvalidConcurrency",
    "QueueCleared",
    "TaskGateError",
    "TaskGateConfig",
    "get_config",
    "set_config",
    "__version__",
]
