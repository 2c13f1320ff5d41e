"""
promtopo configuration system.

Provides:
- Pydantic-based settings (environment variables, .env files)
- YAML configuration files describing exporters and topology options
- Construction of exporters from configuration
"""

from promtopo.config.loader import build_exporters, get_config_path, load_config
from promtopo.config.models import (
    ConfigError,
    DiscoveryConfig,
    ExporterConfig,
    QueryConfig,
)
from promtopo.config.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # File configuration
    "DiscoveryConfig",
    "ExporterConfig",
    "QueryConfig",
    "ConfigError",
    "get_config_path",
    "load_config",
    "build_exporters",
]
