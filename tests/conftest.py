"""
Pytest configuration and shared fixtures for taskgate tests

Provides common fixtures for limiters, telemetry and configuration files.
"""

import asyncio
import tempfile
from pathlib import Path

import pytest

from taskgate.config import set_config
from taskgate.observability.config import TelemetryConfig
from taskgate.observability.metrics import initialize_metrics, reset_metrics


async def drain(ticks: int = 5) -> None:
    """Let the event loop run a few iterations so callbacks settle"""
    for _ in range(ticks):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Provide the drain helper to tests"""
    return drain


@pytest.fixture
def telemetry_config():
    """Provide a telemetry configuration with metrics on and no HTTP server"""
    return TelemetryConfig(enabled=True)


@pytest.fixture
def metrics(telemetry_config):
    """Install a global metrics collector for the duration of a test"""
    collector = initialize_metrics(telemetry_config)
    yield collector
    reset_metrics()


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for testing"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Provide a temporary config file for testing"""
    config_file = temp_dir / "taskgate.yml"
    config_content = """
log_level: "DEBUG"
limiter:
  default_concurrency: 3
  reject_on_clear: true
telemetry:
  environment: "test"
"""
    config_file.write_text(config_content)
    return config_file


@pytest.fixture(autouse=True)
def reset_global_state():
    """Keep global configuration and metrics from leaking between tests"""
    set_config(None)
    reset_metrics()
    yield
    set_config(None)
    reset_metrics()


def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests across multiple components"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than a few seconds"
    )
