"""
Configuration management for taskgate

Provides pydantic-based configuration with environment variable support
and YAML file loading capabilities.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .concurrency.limiter import Limiter, validate_concurrency
from .observability.config import TelemetryConfig


class LimiterConfig(BaseModel):
    """Defaults for limiters built from configuration"""

    default_concurrency: int = 10
    reject_on_clear: bool = False

    @field_validator("default_concurrency")
    @classmethod
    def _check_concurrency(cls, value: int) -> int:
        return validate_concurrency(value)


class TaskGateConfig(BaseSettings):
    """Main taskgate configuration"""

    model_config = SettingsConfigDict(
        env_prefix="TASKGATE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    limiter: LimiterConfig = Field(default_factory=LimiterConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    log_level: str = "INFO"

    @classmethod
    def load_from_file(cls, config_path: str = "taskgate.yml") -> "TaskGateConfig":
        """Load configuration from YAML file, falling back to environment variables"""
        import yaml

        config_file = Path(config_path)
        config_data = {}

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def create_limiter(
        self, name: str = "unnamed", concurrency: Optional[int] = None
    ) -> Limiter:
        """Build a Limiter from the configured defaults"""
        return Limiter(
            concurrency if concurrency is not None else self.limiter.default_concurrency,
            name=name,
            reject_on_clear=self.limiter.reject_on_clear,
        )


# Global configuration instance
_config: Optional[TaskGateConfig] = None


def get_config() -> TaskGateConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = TaskGateConfig.load_from_file()
    return _config


def set_config(config: Optional[TaskGateConfig]) -> None:
    """Set the global configuration instance"""
    global _config
    _config = config
