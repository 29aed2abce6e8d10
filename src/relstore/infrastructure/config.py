"""Configuration management for the relational core."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Storage engine configuration."""

    write_lock_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Max time to wait for the global write scope"
    )
    enforce_foreign_keys: bool = Field(
        default=True, description="Check foreign key existence on insert and update"
    )
    populate_materialized_on_define: bool = Field(
        default=False,
        description="Refresh a materialized view immediately when it is defined",
    )


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = Field(default=False, description="Expose a Prometheus scrape endpoint")
    port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="relstore", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for the relational core."""

    model_config = SettingsConfigDict(
        env_prefix="RELSTORE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
