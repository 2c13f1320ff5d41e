"""
Topology discovery orchestrator.

Drives the configured exporters, feeds their samples through
correlation and the entity builders, and merges the entities of every
exporter into one list. A failing exporter is skipped; the pass fails
only when no exporter could be queried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from promtopo.discovery.models import (
    DiscoveryResult,
    ErrorRecord,
    Severity,
    ValidationResult,
)
from promtopo.exporters.base import MetricExporter
from promtopo.metrics import MetricSample
from promtopo.topology.builders import (
    ConsumerEntityBuilder,
    EntityBuilder,
    ProducerEntityBuilder,
    StandaloneEntityBuilder,
)
from promtopo.topology.correlation import Correlator
from promtopo.topology.models import Entity, TopologyConfig

logger = structlog.get_logger()


@dataclass
class TopologyDiscovery:
    """
    Orchestrate topology discovery across multiple exporters.

    Each pass is stateless: correlation maps are built per exporter from
    that exporter's samples and discarded once its entities are built.
    """

    exporters: list[MetricExporter] = field(default_factory=list)
    config: TopologyConfig = field(default_factory=TopologyConfig)

    def add_exporter(self, exporter: MetricExporter) -> None:
        """Add a metric exporter."""
        self.exporters.append(exporter)

    def _describe_exporters(self) -> str:
        return ", ".join(e.describe() for e in self.exporters) or "none configured"

    def _failure(self, reason: str) -> ErrorRecord:
        description = f"{reason}: {self._describe_exporters()}"
        logger.error("discovery_failed", description=description)
        return ErrorRecord(severity=Severity.CRITICAL, description=description)

    async def validate(self) -> ValidationResult:
        """
        Check exporters in order until one is reachable.

        Returns:
            ValidationResult naming the reachable exporter, or carrying a
            critical failure when none is reachable
        """
        result = ValidationResult()

        for exporter in self.exporters:
            result.exporters_checked.append(exporter.name)
            try:
                reachable = await exporter.validate()
            except Exception as exc:
                result.errors[exporter.name] = str(exc)
                reachable = False

            if reachable:
                logger.info("exporter_reachable", exporter=exporter.name)
                result.reachable = exporter.name
                return result

            logger.error("exporter_unreachable", exporter=exporter.describe())

        result.failure = self._failure("All exporter connectivity checks failed")
        return result

    async def discover(self) -> DiscoveryResult:
        """
        Run one discovery pass over all exporters.

        Exporters are queried concurrently; each builds its entities from
        its own samples and the results are merged in exporter order.

        Returns:
            DiscoveryResult with the entities of every exporter that
            succeeded, or a critical failure when all exporters failed
        """
        result = DiscoveryResult()

        outcomes = await asyncio.gather(
            *(self._discover_exporter(exporter) for exporter in self.exporters),
            return_exceptions=True,
        )

        succeeded = 0
        for exporter, outcome in zip(self.exporters, outcomes, strict=True):
            result.exporters_queried.append(exporter.name)
            if isinstance(outcome, BaseException):
                logger.error(
                    "exporter_query_failed",
                    exporter=exporter.describe(),
                    error=str(outcome),
                )
                result.errors[exporter.name] = str(outcome)
                continue

            sample_count, entities = outcome
            succeeded += 1
            result.sample_count += sample_count
            result.entities.extend(entities)
            logger.info(
                "exporter_discovered",
                exporter=exporter.name,
                samples=sample_count,
                entities=len(entities),
            )

        if succeeded == 0:
            result.failure = self._failure("All exporter queries failed")
            return result

        logger.info(
            "discovery_completed",
            scope=self.config.scope,
            entities=result.entity_count,
            failed_exporters=len(result.errors),
        )
        return result

    async def _discover_exporter(self, exporter: MetricExporter) -> tuple[int, list[Entity]]:
        """Query one exporter and build its entities."""
        samples = await exporter.query()
        return len(samples), self.build_entities(samples)

    def build_entities(self, samples: list[MetricSample]) -> list[Entity]:
        """
        Build entities from the samples of one exporter.

        Order: standalone entities, then producers, then consumers.
        """
        correlator = Correlator(self.config)
        standalone_samples, relation_samples = correlator.partition(samples)
        groups = correlator.correlate(relation_samples)

        standalone = StandaloneEntityBuilder(self.config)
        producers = ProducerEntityBuilder(self.config)
        consumers = ConsumerEntityBuilder(self.config)

        entities: list[Entity] = []
        for sample in standalone_samples:
            entities.extend(self._build(standalone, sample.identity, [sample]))
        for producer_id, group in groups.producers.items():
            entities.extend(self._build(producers, producer_id, group))
        for consumer_id, group in groups.consumers.items():
            entities.extend(self._build(consumers, consumer_id, group))

        return entities

    def _build(
        self, builder: EntityBuilder, name: str, samples: list[MetricSample]
    ) -> list[Entity]:
        """Run a builder, isolating the rest of the pass from its failures."""
        try:
            return builder.build(name, samples)
        except Exception:
            logger.exception("entity_build_error", builder=builder.role, name=name)
            return []
