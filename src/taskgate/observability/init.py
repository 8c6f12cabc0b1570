"""
Observability initialization

Provides centralized initialization for tracing, metrics, and logging.
"""

import logging
import logging.config
from typing import Optional

from .config import TelemetryConfig
from .metrics import initialize_metrics, reset_metrics
from .tracer import get_trace_id, initialize_tracing

logger = logging.getLogger(__name__)

_initialized = False
_config: Optional[TelemetryConfig] = None


def initialize_observability(config: TelemetryConfig) -> None:
    """
    Initialize all observability features

    Args:
        config: Telemetry configuration
    """
    global _initialized, _config

    if _initialized:
        logger.warning("Observability already initialized, skipping")
        return

    _config = config

    if config.logging.enabled:
        configure_logging(config)

    if not config.enabled:
        logger.info("Telemetry is disabled")
        _initialized = True
        return

    logger.info(f"Initializing observability for environment: {config.environment}")

    if config.tracing.enabled:
        initialize_tracing(config)

    if config.metrics.enabled:
        initialize_metrics(config)

    _initialized = True
    logger.info("Observability initialization complete")


def configure_logging(config: TelemetryConfig) -> None:
    """Configure console logging, as JSON or plain text"""
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"trace_context": {"()": TraceContextFilter}},
        "formatters": {
            "json": {
                "class": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            },
            "text": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.logging.level,
                "formatter": config.logging.format,
                "filters": ["trace_context"] if config.logging.include_trace_id else [],
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": config.logging.level, "handlers": ["console"]},
        "loggers": {"taskgate": {"level": config.logging.level, "propagate": True}},
    }

    logging.config.dictConfig(log_config)


class TraceContextFilter(logging.Filter):
    """Attach the current trace ID to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        return True


def get_observability_config() -> Optional[TelemetryConfig]:
    """Get the current observability configuration"""
    return _config


def is_observability_initialized() -> bool:
    """Check if observability has been initialized"""
    return _initialized


def shutdown_observability() -> None:
    """Shutdown observability systems gracefully"""
    global _initialized, _config

    if not _initialized:
        return

    logger.info("Shutting down observability systems")

    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.trace import get_tracer_provider

    provider = get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()
        logger.debug("Tracing provider shutdown complete")

    reset_metrics()

    _initialized = False
    _config = None
    logger.info("Observability shutdown complete")
