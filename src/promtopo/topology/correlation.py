"""
Sample correlation and aggregation.

Groups relation samples into producer and consumer groups by their
reserved PRODUCER / CONSUMER labels, aggregates a producer group into
commodity usage, and renormalizes capacities so that used never exceeds
capacity.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from promtopo.metrics import CommodityKind, MetricSample, SampleKind
from promtopo.topology.models import TopologyConfig

logger = structlog.get_logger()


class UnknownSampleKindError(ValueError):
    """Raised when a sample carries a kind the engine cannot route."""


@dataclass
class CorrelationGroups:
    """Samples grouped by producer id and by consumer id."""

    producers: dict[str, list[MetricSample]] = field(default_factory=dict)
    consumers: dict[str, list[MetricSample]] = field(default_factory=dict)

    def add_producer(self, producer_id: str, sample: MetricSample) -> None:
        self.producers.setdefault(producer_id, []).append(sample)

    def add_consumer(self, consumer_id: str, sample: MetricSample) -> None:
        self.consumers.setdefault(consumer_id, []).append(sample)

    def merge(self, other: CorrelationGroups) -> CorrelationGroups:
        """Return a new grouping holding this grouping followed by ``other``."""
        merged = CorrelationGroups()
        for source in (self, other):
            for producer_id, samples in source.producers.items():
                merged.producers.setdefault(producer_id, []).extend(samples)
            for consumer_id, samples in source.consumers.items():
                merged.consumers.setdefault(consumer_id, []).extend(samples)
        return merged

    @property
    def sample_count(self) -> int:
        """Number of distinct samples held in either group."""
        seen = {
            id(sample)
            for groups in (self.producers, self.consumers)
            for samples in groups.values()
            for sample in samples
        }
        return len(seen)


def merge_groups(groups: Iterable[CorrelationGroups]) -> CorrelationGroups:
    """Merge several groupings, preserving sample order within each key."""
    merged = CorrelationGroups()
    for group in groups:
        merged = merged.merge(group)
    return merged


@dataclass(frozen=True)
class CommodityAggregate:
    """Aggregated usage and renormalized capacity of one commodity."""

    commodity: CommodityKind
    used: float
    capacity: float


@dataclass
class Correlator:
    """
    Correlate and aggregate the samples of one discovery pass.

    Holds no state between calls: every call builds fresh maps from the
    samples it is given.
    """

    config: TopologyConfig = field(default_factory=TopologyConfig)

    def partition(
        self, samples: Iterable[MetricSample]
    ) -> tuple[list[MetricSample], list[MetricSample]]:
        """
        Split samples into directly observed entities and relations.

        Returns:
            Tuple of (entity samples, relation samples)

        Raises:
            UnknownSampleKindError: If a sample has an unrecognized kind
        """
        entities: list[MetricSample] = []
        relations: list[MetricSample] = []

        for sample in samples:
            if sample.kind == SampleKind.ENTITY:
                entities.append(sample)
            elif sample.kind == SampleKind.RELATION:
                relations.append(sample)
            else:
                raise UnknownSampleKindError(
                    f"Unknown sample kind {sample.kind!r} for {sample.identity}"
                )

        return entities, relations

    def correlate(self, samples: Iterable[MetricSample]) -> CorrelationGroups:
        """Group samples by their PRODUCER and CONSUMER labels."""
        groups = CorrelationGroups()

        for sample in samples:
            producer_id = sample.producer
            consumer_id = sample.consumer

            if producer_id is None and consumer_id is None:
                logger.debug("sample_uncorrelated", identity=sample.identity)
                continue

            if producer_id is not None:
                groups.add_producer(producer_id, sample)
            if consumer_id is not None:
                groups.add_consumer(consumer_id, sample)

        logger.debug(
            "samples_correlated",
            producers=len(groups.producers),
            consumers=len(groups.consumers),
        )
        return groups

    def renormalize(
        self,
        commodity: CommodityKind,
        used: float,
        capacity: float | None = None,
    ) -> float:
        """
        Get a capacity for ``used`` that keeps utilization at or below 1.

        Uses the source-reported capacity when given, otherwise the
        configured default, raised to ``used`` when exceeded.
        """
        if capacity is None:
            capacity = self.config.default_capacity(commodity)
        if capacity is None:
            return used
        return max(capacity, used)

    def aggregate(
        self, samples: Iterable[MetricSample]
    ) -> dict[CommodityKind, CommodityAggregate]:
        """
        Aggregate a producer group into transaction and response time usage.

        Transactions are summed. Response time is the transaction-weighted
        mean, so a slow path with little traffic barely moves the result;
        samples without a transaction value do not contribute at all.
        """
        total_transaction = 0.0
        weighted_response_time = 0.0

        for sample in samples:
            transaction = sample.metrics.get(CommodityKind.TRANSACTION)
            if transaction is None:
                continue
            total_transaction += transaction
            response_time = sample.metrics.get(CommodityKind.RESPONSE_TIME)
            if response_time is not None:
                weighted_response_time += response_time * transaction

        response_time_used = 0.0
        if total_transaction > 0.0:
            response_time_used = weighted_response_time / total_transaction

        return {
            CommodityKind.TRANSACTION: CommodityAggregate(
                commodity=CommodityKind.TRANSACTION,
                used=total_transaction,
                capacity=self.renormalize(CommodityKind.TRANSACTION, total_transaction),
            ),
            CommodityKind.RESPONSE_TIME: CommodityAggregate(
                commodity=CommodityKind.RESPONSE_TIME,
                used=response_time_used,
                capacity=self.renormalize(CommodityKind.RESPONSE_TIME, response_time_used),
            ),
        }
