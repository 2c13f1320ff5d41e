"""
Metric exporters.

Exporters retrieve samples from Prometheus-compatible sources (generic
Prometheus, Istio telemetry, API-gateway telemetry) through query specs.
"""

from promtopo.exporters.base import (
    ExporterError,
    ExporterHealth,
    MetricExporter,
    QuerySpec,
    SampleParseError,
)
from promtopo.exporters.client import (
    PermanentHTTPError,
    PrometheusClient,
    PrometheusClientError,
    PrometheusQueryError,
    RetryableHTTPError,
)
from promtopo.exporters.prometheus import PrometheusExporter
from promtopo.exporters.queries import (
    QUERY_SOURCES,
    GatewayQuerySpec,
    IstioQuerySpec,
    LabelMappedQuerySpec,
    build_query_specs,
)

__all__ = [
    # Base
    "MetricExporter",
    "QuerySpec",
    "ExporterHealth",
    "ExporterError",
    "SampleParseError",
    # Client
    "PrometheusClient",
    "PrometheusClientError",
    "PrometheusQueryError",
    "RetryableHTTPError",
    "PermanentHTTPError",
    # Exporters
    "PrometheusExporter",
    # Query specs
    "IstioQuerySpec",
    "GatewayQuerySpec",
    "LabelMappedQuerySpec",
    "QUERY_SOURCES",
    "build_query_specs",
]
