"""
Configuration file loading.

Search order:
1. Explicit path (--config flag or PROMTOPO_CONFIG_FILE)
2. .promtopo/config.yaml (current directory)
3. ~/.promtopo/config.yaml (user home)
4. Settings only (environment variables, .env)
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from promtopo.config.models import ConfigError, DiscoveryConfig
from promtopo.config.settings import Settings, get_settings
from promtopo.exporters.client import PrometheusClient
from promtopo.exporters.prometheus import PrometheusExporter
from promtopo.exporters.queries import build_query_specs

logger = structlog.get_logger()


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the configuration file to use.

    Raises:
        ConfigError: If an explicit path is given but does not exist
    """
    if explicit_path:
        path = Path(explicit_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return path

    cwd_config = Path.cwd() / ".promtopo" / "config.yaml"
    if cwd_config.exists():
        return cwd_config

    home_config = Path.home() / ".promtopo" / "config.yaml"
    if home_config.exists():
        return home_config

    return None


def load_config(
    path: str | Path | None = None,
    settings: Settings | None = None,
) -> DiscoveryConfig:
    """
    Load discovery configuration.

    Args:
        path: Explicit config file path
        settings: Settings providing defaults (defaults to cached settings)

    Returns:
        DiscoveryConfig from the file, or from settings when no file exists

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    settings = settings or get_settings()
    config_path = get_config_path(path or settings.config_file)

    if config_path is None:
        logger.debug("no_config_file")
        return DiscoveryConfig.from_settings(settings)

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("failed_to_load_config", path=str(config_path), error=str(e))
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    logger.debug("loaded_config", path=str(config_path))
    return DiscoveryConfig.from_dict(data, settings)


def build_exporters(config: DiscoveryConfig) -> list[PrometheusExporter]:
    """Create one Prometheus exporter per configured exporter."""
    exporters: list[PrometheusExporter] = []

    for exporter_config in config.exporters:
        specs = build_query_specs(
            exporter_config.sources,
            gateway_namespaces=exporter_config.gateway_namespaces,
        )
        specs.extend(q.to_query_spec() for q in exporter_config.queries)

        if not specs:
            raise ConfigError(f"Exporter {exporter_config.name!r} has no queries")

        client = PrometheusClient(
            exporter_config.url,
            username=exporter_config.username,
            password=exporter_config.password,
            bearer_token=exporter_config.bearer_token,
            timeout=exporter_config.timeout,
        )
        exporters.append(PrometheusExporter(exporter_config.name, client, specs))

    return exporters
