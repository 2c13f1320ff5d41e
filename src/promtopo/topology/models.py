"""
Topology entity models.

Entities are the output of a discovery pass: typed nodes that sell and
buy commodities, linked to at most one provider, each carrying the
stitching metadata the receiving system uses to merge it with the same
resource discovered by another probe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from promtopo.metrics import CommodityKind, EntityType

# Default capacities
TRANSACTION_CAPACITY = 20.0
RESPONSE_TIME_CAPACITY = 500.0  # milliseconds

# Stitching
DEFAULT_PROPERTY_NAMESPACE = "DEFAULT"
STITCHING_ATTRIBUTE = "DisplayName"
VM_IP_ATTRIBUTE = "IP"
VAPP_PREFIX = "vApp-"

# Patchable commodity properties
USED = "used"
CAPACITY = "capacity"

DEFAULT_CAPACITIES: dict[CommodityKind, float] = {
    CommodityKind.TRANSACTION: TRANSACTION_CAPACITY,
    CommodityKind.RESPONSE_TIME: RESPONSE_TIME_CAPACITY,
}


def get_entity_id(entity_type: EntityType, scope: str, name: str) -> str:
    """Build the stable id of an entity from its type, scope and name."""
    return f"{entity_type.name}-{scope}/{name}"


@dataclass(frozen=True)
class TopologyConfig:
    """
    Settings shared by the correlation stage and the entity builders.

    Passed in at construction time so every stage is a pure function of
    its configuration and the samples of the current pass.
    """

    scope: str = "default"
    capacities: dict[CommodityKind, float] = field(
        default_factory=lambda: dict(DEFAULT_CAPACITIES)
    )
    supported_entity_types: frozenset[EntityType] = frozenset(
        {EntityType.APPLICATION, EntityType.VIRTUAL_APPLICATION}
    )
    supported_commodities: frozenset[CommodityKind] = frozenset(
        {CommodityKind.TRANSACTION, CommodityKind.RESPONSE_TIME}
    )

    # Commodities every application sells, filled with 0 when unobserved
    application_commodities: tuple[CommodityKind, ...] = (
        CommodityKind.TRANSACTION,
        CommodityKind.RESPONSE_TIME,
    )

    # Commodities sold by an implied proxy VM
    proxy_vm_commodities: tuple[CommodityKind, ...] = (
        CommodityKind.VCPU,
        CommodityKind.VMEM,
    )

    keep_standalone: bool = False
    create_proxy_vm: bool = False

    property_namespace: str = DEFAULT_PROPERTY_NAMESPACE
    stitching_attribute: str = STITCHING_ATTRIBUTE
    vm_ip_attribute: str = VM_IP_ATTRIBUTE
    vapp_prefix: str = VAPP_PREFIX

    def default_capacity(self, commodity: CommodityKind) -> float | None:
        return self.capacities.get(commodity)

    def entity_id(self, entity_type: EntityType, name: str) -> str:
        return get_entity_id(entity_type, self.scope, name)

    def supports_entity(self, entity_type: EntityType) -> bool:
        return entity_type in self.supported_entity_types

    def supports_commodity(self, commodity: CommodityKind) -> bool:
        return commodity in self.supported_commodities


@dataclass(frozen=True)
class Commodity:
    """A commodity sold or bought by an entity."""

    kind: CommodityKind
    used: float
    capacity: float | None = None
    key: str | None = None

    @property
    def utilization(self) -> float | None:
        if not self.capacity:
            return None
        return self.used / self.capacity

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {"kind": self.kind.value, "used": self.used}
        if self.capacity is not None:
            result["capacity"] = self.capacity
        if self.key is not None:
            result["key"] = self.key
        return result


@dataclass(frozen=True)
class BoughtRelation:
    """Commodities bought from exactly one provider, referenced by id."""

    provider_id: str
    provider_type: EntityType
    commodities: tuple[Commodity, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "provider_id": self.provider_id,
            "provider_type": self.provider_type.value,
            "commodities": [c.to_dict() for c in self.commodities],
        }


@dataclass(frozen=True)
class EntityProperty:
    """Namespaced property identifying an entity for stitching."""

    namespace: str
    name: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"namespace": self.namespace, "name": self.name, "value": self.value}


@dataclass(frozen=True)
class StitchingRule:
    """
    How the receiving system matches this entity to an external one.

    The local ``attribute`` is compared with ``external_attribute`` on
    entities discovered by other probes. ``use_topology_extension``
    asks the server to resolve the external attribute through its
    extended property lookup, for environments where the local and
    external attribute names diverge.
    """

    attribute: str
    external_attribute: str
    external_entity_type: EntityType | None = None
    use_topology_extension: bool = False

    # Commodity properties copied onto the merged entity
    patched_selling: dict[CommodityKind, tuple[str, ...]] = field(default_factory=dict)
    patched_buying: dict[CommodityKind, tuple[str, ...]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {
            "attribute": self.attribute,
            "external_attribute": self.external_attribute,
            "use_topology_extension": self.use_topology_extension,
        }
        if self.external_entity_type is not None:
            result["external_entity_type"] = self.external_entity_type.value
        if self.patched_selling:
            result["patched_selling"] = {
                k.value: list(v) for k, v in self.patched_selling.items()
            }
        if self.patched_buying:
            result["patched_buying"] = {
                k.value: list(v) for k, v in self.patched_buying.items()
            }
        return result


@dataclass(frozen=True)
class Entity:
    """A node of the discovered topology."""

    entity_type: EntityType
    id: str
    display_name: str
    stitching_property: EntityProperty
    stitching_rule: StitchingRule
    commodities_sold: tuple[Commodity, ...] = ()
    bought: BoughtRelation | None = None

    # False marks a placeholder the receiving system merges into another entity
    monitored: bool = False
    keep_standalone: bool | None = None

    @property
    def provider_id(self) -> str | None:
        return self.bought.provider_id if self.bought else None

    def sold(self, commodity: CommodityKind) -> Commodity | None:
        """Get the sold commodity of the given kind, if any."""
        for sold in self.commodities_sold:
            if sold.kind == commodity:
                return sold
        return None

    def bought_commodity(self, commodity: CommodityKind) -> Commodity | None:
        """Get the bought commodity of the given kind, if any."""
        if self.bought is None:
            return None
        for bought in self.bought.commodities:
            if bought.kind == commodity:
                return bought
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {
            "entity_type": self.entity_type.value,
            "id": self.id,
            "display_name": self.display_name,
            "commodities_sold": [c.to_dict() for c in self.commodities_sold],
            "property": self.stitching_property.to_dict(),
            "stitching": self.stitching_rule.to_dict(),
            "monitored": self.monitored,
        }
        if self.bought is not None:
            result["bought"] = self.bought.to_dict()
        if self.keep_standalone is not None:
            result["keep_standalone"] = self.keep_standalone
        return result
