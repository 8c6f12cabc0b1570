"""
Prometheus metrics collection for taskgate

Records submissions, settlements, queue depth and ceiling changes for every
limiter, labelled by limiter name.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """
    Central metrics collector for limiter activity

    Owns its own registry so several collectors (for example in tests) never
    clash over metric names.
    """

    config: TelemetryConfig
    registry: CollectorRegistry = field(default_factory=CollectorRegistry)
    enabled: bool = field(default=False, init=False)

    tasks_submitted_total: Counter = field(init=False)
    tasks_completed_total: Counter = field(init=False)
    tasks_discarded_total: Counter = field(init=False)
    concurrency_changes_total: Counter = field(init=False)
    task_duration: Histogram = field(init=False)

    active_tasks: Gauge = field(init=False)
    pending_tasks: Gauge = field(init=False)
    concurrency_limit: Gauge = field(init=False)
    system_info: Info = field(init=False)

    def __post_init__(self):
        """Initialize all metrics after dataclass creation"""
        if not self.config.enabled or not self.config.metrics.enabled:
            logger.info("Metrics collection is disabled")
            return

        self._initialize_metrics()
        self.enabled = True

        if self.config.should_start_metrics_server():
            self._start_metrics_server()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""
        labels = list(self.config.metrics.default_labels.keys())
        buckets = self.config.metrics.duration_buckets

        self.tasks_submitted_total = Counter(
            "taskgate_tasks_submitted_total",
            "Total number of tasks submitted to a limiter",
            labelnames=["limiter"] + labels,
            registry=self.registry,
        )

        self.tasks_completed_total = Counter(
            "taskgate_tasks_completed_total",
            "Total number of tasks that settled",
            labelnames=["limiter", "status"] + labels,
            registry=self.registry,
        )

        self.tasks_discarded_total = Counter(
            "taskgate_tasks_discarded_total",
            "Total number of queued tasks discarded by clear_queue",
            labelnames=["limiter"] + labels,
            registry=self.registry,
        )

        self.concurrency_changes_total = Counter(
            "taskgate_concurrency_changes_total",
            "Total number of runtime concurrency ceiling changes",
            labelnames=["limiter"] + labels,
            registry=self.registry,
        )

        self.task_duration = Histogram(
            "taskgate_task_duration_seconds",
            "Run time of admitted tasks",
            labelnames=["limiter"] + labels,
            buckets=buckets,
            registry=self.registry,
        )

        self.active_tasks = Gauge(
            "taskgate_active_tasks",
            "Number of tasks currently running",
            labelnames=["limiter"] + labels,
            registry=self.registry,
        )

        self.pending_tasks = Gauge(
            "taskgate_pending_tasks",
            "Number of tasks waiting for a slot",
            labelnames=["limiter"] + labels,
            registry=self.registry,
        )

        self.concurrency_limit = Gauge(
            "taskgate_concurrency_limit",
            "Current concurrency ceiling",
            labelnames=["limiter"] + labels,
            registry=self.registry,
        )

        self.system_info = Info(
            "taskgate_system", "System information", registry=self.registry
        )
        self.system_info.info(
            {
                "version": self.config.tracing.service_version,
                "environment": self.config.environment,
            }
        )

        logger.info("Prometheus metrics initialized")

    def _start_metrics_server(self):
        """Start HTTP server for metrics endpoint"""
        try:
            start_http_server(port=self.config.metrics.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.config.metrics.port}")
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")

    def _labels(self, limiter: str, **extra: str) -> dict[str, str]:
        return {**self.config.metrics.default_labels, "limiter": limiter, **extra}

    def record_task_submitted(self, limiter: str) -> None:
        """Record a task submission"""
        if not self.enabled:
            return
        self.tasks_submitted_total.labels(**self._labels(limiter)).inc()

    def record_task_completed(self, limiter: str, status: str, duration: float) -> None:
        """Record a settled task and its run time"""
        if not self.enabled:
            return
        self.tasks_completed_total.labels(**self._labels(limiter, status=status)).inc()
        self.task_duration.labels(**self._labels(limiter)).observe(duration)

    def record_tasks_discarded(self, limiter: str, count: int) -> None:
        """Record tasks discarded from the queue"""
        if not self.enabled or count <= 0:
            return
        self.tasks_discarded_total.labels(**self._labels(limiter)).inc(count)

    def record_concurrency(self, limiter: str, value: float, changed: bool = False) -> None:
        """Record the current ceiling, counting it as a change when requested"""
        if not self.enabled:
            return
        self.concurrency_limit.labels(**self._labels(limiter)).set(value)
        if changed:
            self.concurrency_changes_total.labels(**self._labels(limiter)).inc()

    def update_queue_state(self, limiter: str, active: int, pending: int) -> None:
        """Publish active and pending task counts"""
        if not self.enabled:
            return
        self.active_tasks.labels(**self._labels(limiter)).set(active)
        self.pending_tasks.labels(**self._labels(limiter)).set(pending)

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")


# Global metrics instance
_metrics: Optional[MetricsCollector] = None


def initialize_metrics(config: TelemetryConfig) -> MetricsCollector:
    """Initialize global metrics collector"""
    global _metrics
    _metrics = MetricsCollector(config)
    return _metrics


def get_metrics() -> Optional[MetricsCollector]:
    """Get the global metrics collector"""
    return _metrics


def reset_metrics() -> None:
    """Drop the global metrics collector"""
    global _metrics
    _metrics = None


def is_metrics_enabled() -> bool:
    """Check if metrics collection is enabled"""
    return _metrics is not None and _metrics.enabled
