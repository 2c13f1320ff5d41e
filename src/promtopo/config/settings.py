"""
Application settings using Pydantic.

Provides environment-based configuration loading with PROMTOPO_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMTOPO_",
    )

    # Prometheus
    prometheus_url: str = "http://localhost:9090"
    metrics_user: str | None = None
    metrics_password: str | None = None
    bearer_token: str | None = None
    http_timeout: float = 30.0

    # Built-in query sources for the default exporter
    sources: list[str] = ["istio"]
    gateway_namespaces: list[str] = ["openfaas"]

    # Topology
    scope: str = "default"
    keep_standalone: bool = False
    create_proxy_vm: bool = False
    transaction_capacity: float = 20.0
    response_time_capacity: float = 500.0  # milliseconds

    # Logging
    log_level: str = "INFO"

    # Optional YAML configuration file
    config_file: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
