"""
Metric sample models.

A MetricSample is the unit exchanged between metric exporters and the
topology engine: one entity (or one producer/consumer pair) with its
labels and the commodity values observed for it in the current pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

# Reserved label keys used by correlation
PRODUCER = "PRODUCER"
CONSUMER = "CONSUMER"
KEY = "KEY"

# Well-known labels read by the standalone builder
IP = "ip"
NAME = "name"
SERVICE_NAME = "service_name"
SERVICE_NAMESPACE = "service_ns"
CATEGORY = "category"


class SampleKind(StrEnum):
    """Discriminant for how a sample enters the topology engine."""

    ENTITY = "entity"  # Directly observed entity (standalone builder)
    RELATION = "relation"  # Producer/consumer transaction (correlation)


class EntityType(StrEnum):
    """Kinds of entity the engine can emit."""

    APPLICATION = "application"
    VIRTUAL_APPLICATION = "virtual_application"
    VIRTUAL_MACHINE = "virtual_machine"


class CommodityKind(StrEnum):
    """Commodity dimensions bought and sold between entities."""

    TRANSACTION = "transaction"  # requests per second
    RESPONSE_TIME = "response_time"  # milliseconds
    VCPU = "vcpu"
    VMEM = "vmem"


@dataclass
class MetricSample:
    """One labeled observation set for an entity in a discovery pass."""

    kind: SampleKind
    entity_type: EntityType
    identity: str
    labels: dict[str, str] = field(default_factory=dict)
    metrics: dict[CommodityKind, float] = field(default_factory=dict)

    # Capacities reported by the source, if any
    capacities: dict[CommodityKind, float] = field(default_factory=dict)

    def set_metric(self, commodity: CommodityKind, value: float) -> None:
        """Record a commodity value, replacing any earlier observation."""
        self.metrics[commodity] = value

    def set_capacity(self, commodity: CommodityKind, value: float) -> None:
        self.capacities[commodity] = value

    def set_label(self, key: str, value: str) -> None:
        self.labels[key] = value

    @property
    def producer(self) -> str | None:
        return self.labels.get(PRODUCER)

    @property
    def consumer(self) -> str | None:
        return self.labels.get(CONSUMER)

    @property
    def merge_key(self) -> tuple[SampleKind, EntityType, str]:
        """Key under which observations of the same entity are merged."""
        return (self.kind, self.entity_type, self.identity)

    def merge(self, other: MetricSample) -> None:
        """Fold another observation of the same entity into this one."""
        self.labels.update(other.labels)
        for commodity, value in other.metrics.items():
            self.set_metric(commodity, value)
        for commodity, value in other.capacities.items():
            self.set_capacity(commodity, value)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "kind": self.kind.value,
            "entity_type": self.entity_type.value,
            "identity": self.identity,
            "labels": dict(self.labels),
            "metrics": {k.value: v for k, v in self.metrics.items()},
            "capacities": {k.value: v for k, v in self.capacities.items()},
        }
