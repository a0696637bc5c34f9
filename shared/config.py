"""
Shared configuration management for the case-management ledger services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CDMS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level")

    # Ledger store
    ledger_backend: str = Field(default="memory", description="Ledger backend: memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis ledger URL")
    ledger_namespace: str = Field(default="cdms:", description="Key namespace inside the Redis ledger")

    # Identity
    identity_header: str = Field(default="X-MSP-ID", description="Header carrying the caller MSP identity")

    # Observability
    enable_metrics: bool = Field(default=True, description="Expose Prometheus metrics")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "cdms"
    port: int = 8020
    host: str = "0.0.0.0"


def get_config(service_name: str = "cdms", port: Optional[int] = None) -> ServiceConfig:
    """Get configuration for a specific service."""
    if port is None:
        return ServiceConfig(service_name=service_name)
    return ServiceConfig(service_name=service_name, port=port)
