"""
Prometheus metric exporter.

Runs a set of query specs against one Prometheus-compatible source and
merges the parsed series into one sample per observed entity.
"""

from __future__ import annotations

import structlog
from circuitbreaker import CircuitBreakerError

from promtopo.exporters.base import (
    ExporterError,
    ExporterHealth,
    MetricExporter,
    QuerySpec,
    SampleParseError,
)
from promtopo.exporters.client import PrometheusClient, PrometheusClientError
from promtopo.metrics import MetricSample

logger = structlog.get_logger()


class PrometheusExporter(MetricExporter):
    """
    Export samples from a Prometheus server.

    Configuration:
        name: Exporter name used in logs and failure reports
        client: Prometheus API client
        query_specs: Specs to run, in order
    """

    def __init__(
        self,
        name: str,
        client: PrometheusClient,
        query_specs: list[QuerySpec],
    ) -> None:
        self._name = name
        self.client = client
        self.query_specs = list(query_specs)

    @property
    def name(self) -> str:
        return self._name

    def describe(self) -> str:
        return f"{self._name} ({self.client.url})"

    def __repr__(self) -> str:
        return f"PrometheusExporter(name={self._name!r}, url={self.client.url!r})"

    async def query(self) -> list[MetricSample]:
        """Run every query spec and merge samples of the same entity."""
        log = logger.bind(exporter=self._name)
        merged: dict[tuple, MetricSample] = {}

        for spec in self.query_specs:
            try:
                results = await self.client.query(spec.query)
            except (PrometheusClientError, CircuitBreakerError) as exc:
                log.error("query_failed", query=spec.name, error=str(exc))
                raise ExporterError(f"{self._name}: query {spec.name} failed: {exc}") from exc

            dropped = 0
            for series in results:
                try:
                    sample = spec.parse(series)
                except SampleParseError as exc:
                    dropped += 1
                    log.warning("sample_dropped", query=spec.name, reason=str(exc))
                    continue

                existing = merged.get(sample.merge_key)
                if existing is None:
                    merged[sample.merge_key] = sample
                else:
                    existing.merge(sample)

            log.debug(
                "query_parsed",
                query=spec.name,
                series=len(results),
                dropped=dropped,
            )

        samples = list(merged.values())
        log.info("exporter_queried", samples=len(samples))
        return samples

    async def health_check(self) -> ExporterHealth:
        return await self.client.health_check()
