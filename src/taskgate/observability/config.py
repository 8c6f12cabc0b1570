"""
Telemetry settings for limiter tracing, metrics and logging

Nested under TaskGateConfig.telemetry, so every field can be set from
taskgate.yml or TASKGATE_TELEMETRY__* environment variables.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .. import __version__


class TracingConfig(BaseModel):
    """Span export for limiter operations"""

    enabled: bool = True
    service_name: str = "taskgate"
    service_version: str = __version__

    otlp_endpoint: Optional[str] = Field(
        default=None, description="OTLP gRPC collector, e.g. http://localhost:4317"
    )
    otlp_insecure: bool = True

    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)


class MetricsConfig(BaseModel):
    """Per-limiter Prometheus metrics"""

    enabled: bool = True
    serve: bool = Field(
        default=False, description="Expose the registry over HTTP on `port`"
    )
    port: int = Field(default=9090, ge=1024, le=65535)

    default_labels: dict[str, str] = Field(
        default_factory=dict, description="Extra labels on every limiter series"
    )

    # Task run times, in seconds
    duration_buckets: list[float] = Field(
        default_factory=lambda: [0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
    )


class LoggingConfig(BaseModel):
    """Handler setup applied by initialize_observability()"""

    enabled: bool = True
    level: str = "INFO"
    format: str = Field(default="text", description="json or text")
    include_trace_id: bool = True


class TelemetryConfig(BaseModel):
    """Telemetry for taskgate limiters, off unless enabled"""

    enabled: bool = False
    environment: str = "development"

    tracing: TracingConfig = Field(default_factory=TracingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_resource_attributes(self) -> dict[str, str]:
        """OpenTelemetry resource attributes for the tracer provider"""
        return {
            "service.name": self.tracing.service_name,
            "service.version": self.tracing.service_version,
            "deployment.environment": self.environment,
        }

    def should_export_traces(self) -> bool:
        return (
            self.enabled
            and self.tracing.enabled
            and self.tracing.otlp_endpoint is not None
        )

    def should_start_metrics_server(self) -> bool:
        return self.enabled and self.metrics.enabled and self.metrics.serve
