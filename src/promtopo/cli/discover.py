"""
CLI commands for exporter validation and topology discovery.

Commands:
    promtopo validate                    - Check exporter connectivity
    promtopo discover                    - Print discovered entities as a table
    promtopo discover --format json      - Export as JSON
    promtopo discover --format mermaid   - Export as Mermaid
    promtopo discover --format dot       - Export as DOT
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from promtopo.cli.ux import error, header, print_table, success, warning
from promtopo.config import (
    ConfigError,
    DiscoveryConfig,
    Settings,
    build_exporters,
    get_settings,
    load_config,
)
from promtopo.discovery import DiscoveryResult, TopologyDiscovery
from promtopo.topology.models import Entity
from promtopo.topology.serializers import (
    serialize_dot,
    serialize_json,
    serialize_mermaid,
)

OUTPUT_FORMATS = ["table", "json", "mermaid", "dot"]


def _load(
    config_file: Optional[str],
    prometheus_url: Optional[str],
    scope: Optional[str],
) -> DiscoveryConfig:
    settings = get_settings()
    if prometheus_url:
        settings = Settings(**{**settings.model_dump(), "prometheus_url": prometheus_url})

    config = load_config(config_file, settings)
    if scope:
        config.scope = scope
    return config


def _create_discovery(config: DiscoveryConfig) -> TopologyDiscovery:
    return TopologyDiscovery(
        exporters=list(build_exporters(config)),
        config=config.to_topology_config(),
    )


def validate_command(
    config_file: Optional[str] = None,
    prometheus_url: Optional[str] = None,
) -> int:
    """
    Check that at least one configured exporter is reachable.

    Returns:
        Exit code (0 if an exporter is reachable, 2 otherwise)
    """
    try:
        discovery = _create_discovery(_load(config_file, prometheus_url, None))
    except ConfigError as e:
        error(f"Invalid configuration: {e}")
        return 2

    result = asyncio.run(discovery.validate())

    for name, message in result.errors.items():
        warning(f"{name}: {message}")

    if not result.ok:
        error(result.failure.description)
        return 2

    success(f"Exporter {result.reachable} is reachable")
    return 0


def discover_command(
    config_file: Optional[str] = None,
    output_format: str = "table",
    output_file: Optional[str] = None,
    scope: Optional[str] = None,
    prometheus_url: Optional[str] = None,
) -> int:
    """
    Run one discovery pass and output the entities.

    Returns:
        Exit code (0 on success, 1 if some exporters failed,
        2 on configuration errors or when all exporters failed)
    """
    if output_format not in OUTPUT_FORMATS:
        error(f"Unknown format: {output_format}")
        return 2

    try:
        discovery = _create_discovery(_load(config_file, prometheus_url, scope))
    except ConfigError as e:
        error(f"Invalid configuration: {e}")
        return 2

    result = asyncio.run(discovery.discover())

    if not result.ok:
        error(result.failure.description)
        return 2

    for name, message in result.errors.items():
        warning(f"Exporter {name} failed: {message}")

    code = _output_entities(result, output_format, output_file)
    if code != 0:
        return code
    return 1 if result.partial else 0


def _output_entities(
    result: DiscoveryResult,
    output_format: str,
    output_file: Optional[str],
) -> int:
    """Serialize and output discovered entities."""
    if output_format == "table" and not output_file:
        _print_entities(result)
        return 0

    # A table written to a file is saved as JSON
    serializers = {
        "table": serialize_json,
        "json": serialize_json,
        "mermaid": serialize_mermaid,
        "dot": serialize_dot,
    }
    output = serializers[output_format](result.entities)

    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
            f.write("\n")
        success(f"Wrote {output_format} output to {output_file}")
    else:
        # print() keeps rich from interpreting brackets as markup
        print(output)

    return 0


def _commodity_summary(entity: Entity) -> str:
    parts = []
    for commodity in entity.commodities_sold:
        if commodity.capacity is None:
            parts.append(f"{commodity.kind.value}={commodity.used:g}")
        else:
            parts.append(f"{commodity.kind.value}={commodity.used:g}/{commodity.capacity:g}")
    return ", ".join(parts) or "-"


def _print_entities(result: DiscoveryResult) -> None:
    header(f"Discovered {result.entity_count} entities from {result.sample_count} samples")

    rows = [
        [
            entity.entity_type.value,
            entity.id,
            entity.display_name,
            entity.provider_id or "-",
            _commodity_summary(entity),
        ]
        for entity in result.entities
    ]
    print_table(
        "Entities",
        ["Type", "ID", "Display Name", "Provider", "Sold"],
        rows,
    )


def register_discover_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register validate and discover subcommand parsers."""
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check that at least one exporter is reachable",
    )
    _add_common_arguments(validate_parser)

    discover_parser = subparsers.add_parser(
        "discover",
        help="Discover entities from exporter metrics",
    )
    _add_common_arguments(discover_parser)
    discover_parser.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=OUTPUT_FORMATS,
        default="table",
        help="Output format (default: table)",
    )
    discover_parser.add_argument(
        "--output",
        "-o",
        dest="output_file",
        help="Write output to file instead of stdout",
    )
    discover_parser.add_argument(
        "--scope",
        help="Scope used in entity ids (overrides config)",
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        dest="config_file",
        help="Path to config YAML (default: .promtopo/config.yaml)",
    )
    parser.add_argument(
        "--prometheus-url",
        "-p",
        help="Prometheus server URL (or set PROMTOPO_PROMETHEUS_URL)",
    )
