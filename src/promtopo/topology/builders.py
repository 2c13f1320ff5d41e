"""
Entity builders.

Turn correlated samples into topology entities:

- StandaloneEntityBuilder: one directly observed application, plus its
  consumer proxy and (optionally) an implied proxy VM provider
- ProducerEntityBuilder: one aggregated selling entity per producer id
- ConsumerEntityBuilder: one buying entity per (consumer, producer) pair

Builders never raise for bad input. An entity that cannot be built is
logged and left out; its siblings are unaffected.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog

from promtopo.metrics import (
    IP,
    KEY,
    NAME,
    SERVICE_NAME,
    SERVICE_NAMESPACE,
    CommodityKind,
    EntityType,
    MetricSample,
)
from promtopo.topology.correlation import Correlator
from promtopo.topology.factory import BuildResult, create_entity
from promtopo.topology.models import (
    CAPACITY,
    USED,
    BoughtRelation,
    Commodity,
    Entity,
    EntityProperty,
    StitchingRule,
    TopologyConfig,
)

logger = structlog.get_logger()


class EntityBuilder(ABC):
    """
    Base class for entity builders.

    All builders take a name and the samples correlated under it, and
    return the entities built from them (possibly none).
    """

    def __init__(self, config: TopologyConfig | None = None) -> None:
        self.config = config or TopologyConfig()

    @property
    @abstractmethod
    def role(self) -> str:
        """Builder role, used in log events."""

    @abstractmethod
    def build(self, name: str, samples: list[MetricSample]) -> list[Entity]:
        """
        Build entities for one correlated name.

        Args:
            name: Entity identity, producer id or consumer id
            samples: Samples correlated under the name

        Returns:
            Entities built, in provider-before-consumer order
        """

    def _property(self, value: str) -> EntityProperty:
        return EntityProperty(
            namespace=self.config.property_namespace,
            name=self.config.stitching_attribute,
            value=value,
        )

    def _supported_entity(self, entity_type: EntityType, name: str) -> bool:
        if self.config.supports_entity(entity_type):
            return True
        logger.error(
            "unsupported_entity_type",
            builder=self.role,
            name=name,
            entity_type=entity_type.value,
        )
        return False

    def _supported_commodity(self, commodity: CommodityKind, entity_id: str) -> bool:
        if self.config.supports_commodity(commodity):
            return True
        logger.warning(
            "unsupported_commodity",
            builder=self.role,
            entity_id=entity_id,
            commodity=commodity.value,
        )
        return False

    def _accept(self, result: BuildResult, entity_id: str) -> Entity | None:
        if result.entity is None:
            logger.error(
                "entity_build_failed",
                builder=self.role,
                entity_id=entity_id,
                errors=result.errors,
            )
            return None
        logger.debug("entity_built", builder=self.role, entity_id=entity_id)
        return result.entity


class StandaloneEntityBuilder(EntityBuilder):
    """
    Build entities for a directly observed application.

    Produces, in order: an optional proxy VM provider, the application
    selling its observed commodities, and a virtual application buying
    those commodities from it.
    """

    @property
    def role(self) -> str:
        return "standalone"

    def build(self, name: str, samples: list[MetricSample]) -> list[Entity]:
        if not samples:
            return []

        sample = _merged(samples)
        if not self._supported_entity(sample.entity_type, name):
            return []

        uid = sample.identity
        ip = sample.labels.get(IP) or uid
        display = sample.labels.get(NAME) or uid

        entities: list[Entity] = []
        vm: Entity | None = None

        if self.config.create_proxy_vm:
            vm = self._build_proxy_vm(uid, ip, display)
            if vm is None:
                return []
            entities.append(vm)

        application = self._build_application(sample, vm, uid, ip, display)
        if application is None:
            return []
        entities.append(application)

        consumer = self._build_consumer(application, uid, ip, display)
        if consumer is not None:
            entities.append(consumer)

        return entities

    def _build_proxy_vm(self, uid: str, ip: str, name: str) -> Entity | None:
        """Build the implied VM hosting the application."""
        vm_type = EntityType.VIRTUAL_MACHINE
        entity_id = self.config.entity_id(vm_type, uid)

        result = create_entity(
            entity_type=vm_type,
            entity_id=entity_id,
            display_name=self.config.entity_id(vm_type, name),
            commodities_sold=[
                Commodity(kind=commodity, used=0.0)
                for commodity in self.config.proxy_vm_commodities
            ],
            stitching_property=self._property(ip),
            stitching_rule=StitchingRule(
                attribute=self.config.stitching_attribute,
                external_attribute=self.config.vm_ip_attribute,
            ),
            monitored=False,
            keep_standalone=self.config.keep_standalone,
        )
        return self._accept(result, entity_id)

    def _build_application(
        self,
        sample: MetricSample,
        vm: Entity | None,
        uid: str,
        ip: str,
        name: str,
    ) -> Entity | None:
        entity_type = sample.entity_type
        entity_id = self.config.entity_id(entity_type, uid)
        key = _commodity_key(sample, ip)

        observed = dict(sample.metrics)
        for commodity in self.config.application_commodities:
            observed.setdefault(commodity, 0.0)

        correlator = Correlator(self.config)
        sold: list[Commodity] = []
        for commodity, used in observed.items():
            if not self._supported_commodity(commodity, entity_id):
                continue
            capacity = correlator.renormalize(
                commodity, used, sample.capacities.get(commodity)
            )
            sold.append(Commodity(kind=commodity, used=used, capacity=capacity, key=key))

        bought = None
        if vm is not None:
            bought = BoughtRelation(
                provider_id=vm.id,
                provider_type=vm.entity_type,
                commodities=vm.commodities_sold,
            )

        result = create_entity(
            entity_type=entity_type,
            entity_id=entity_id,
            display_name=self.config.entity_id(entity_type, name),
            commodities_sold=sold,
            bought=bought,
            stitching_property=self._property(ip),
            stitching_rule=StitchingRule(
                attribute=self.config.stitching_attribute,
                external_attribute=self.config.stitching_attribute,
                external_entity_type=entity_type,
                use_topology_extension=True,
                patched_selling={c.kind: (USED,) for c in sold},
            ),
            monitored=False,
            keep_standalone=self.config.keep_standalone if vm is None else None,
        )
        return self._accept(result, entity_id)

    def _build_consumer(
        self, provider: Entity, uid: str, ip: str, name: str
    ) -> Entity | None:
        """Build the virtual application buying everything the provider sells."""
        if provider.entity_type != EntityType.APPLICATION:
            logger.error(
                "unsupported_consumer_provider",
                provider_id=provider.id,
                provider_type=provider.entity_type.value,
            )
            return None

        vapp_type = EntityType.VIRTUAL_APPLICATION
        entity_id = self.config.entity_id(vapp_type, uid)
        commodities = tuple(
            Commodity(kind=c.kind, used=c.used, key=c.key) for c in provider.commodities_sold
        )

        result = create_entity(
            entity_type=vapp_type,
            entity_id=entity_id,
            display_name=self.config.entity_id(vapp_type, name),
            bought=BoughtRelation(
                provider_id=provider.id,
                provider_type=provider.entity_type,
                commodities=commodities,
            ),
            stitching_property=self._property(self.config.vapp_prefix + ip),
            stitching_rule=StitchingRule(
                attribute=self.config.stitching_attribute,
                external_attribute=self.config.stitching_attribute,
                external_entity_type=vapp_type,
                use_topology_extension=True,
                patched_buying={c.kind: (USED,) for c in commodities},
            ),
            monitored=False,
            keep_standalone=None if self.config.create_proxy_vm else self.config.keep_standalone,
        )
        return self._accept(result, entity_id)


class ProducerEntityBuilder(EntityBuilder):
    """Build one aggregated selling entity for a producer group."""

    def __init__(self, config: TopologyConfig | None = None) -> None:
        super().__init__(config)
        self.correlator = Correlator(self.config)

    @property
    def role(self) -> str:
        return "producer"

    def build(self, name: str, samples: list[MetricSample]) -> list[Entity]:
        if not samples:
            return []

        entity_type = samples[0].entity_type
        if not self._supported_entity(entity_type, name):
            return []

        entity_id = self.config.entity_id(entity_type, name)
        display_name = self.config.vapp_prefix + name
        key = _declared_key(samples) or name

        aggregates = self.correlator.aggregate(samples)
        _log_unaggregated(samples, aggregates.keys(), entity_id)

        sold: list[Commodity] = []
        for commodity, aggregate in aggregates.items():
            if not self._supported_commodity(commodity, entity_id):
                continue
            sold.append(
                Commodity(
                    kind=commodity,
                    used=aggregate.used,
                    capacity=aggregate.capacity,
                    key=key,
                )
            )

        result = create_entity(
            entity_type=entity_type,
            entity_id=entity_id,
            display_name=display_name,
            commodities_sold=sold,
            stitching_property=self._property(display_name),
            stitching_rule=StitchingRule(
                attribute=self.config.stitching_attribute,
                external_attribute=self.config.stitching_attribute,
                patched_selling={c.kind: (USED, CAPACITY) for c in sold},
            ),
            monitored=False,
        )
        entity = self._accept(result, entity_id)
        return [entity] if entity is not None else []


class ConsumerEntityBuilder(EntityBuilder):
    """
    Build buying entities for a consumer group.

    Emits one entity per distinct producer the consumer talks to. When
    several samples describe the same (consumer, producer) pair the
    last value seen for each commodity wins.
    """

    @property
    def role(self) -> str:
        return "consumer"

    def build(self, name: str, samples: list[MetricSample]) -> list[Entity]:
        pairs: dict[str, _PairUsage] = {}

        for sample in samples:
            producer_id = sample.producer
            if not producer_id:
                logger.warning(
                    "consumer_sample_without_producer",
                    consumer=name,
                    identity=sample.identity,
                )
                continue
            pair = pairs.setdefault(producer_id, _PairUsage(entity_type=sample.entity_type))
            pair.used.update(sample.metrics)
            if sample.labels.get(KEY):
                pair.key = sample.labels[KEY]

        entities: list[Entity] = []
        for producer_id, pair in pairs.items():
            entity = self._build_pair(name, producer_id, pair)
            if entity is not None:
                entities.append(entity)
        return entities

    def _build_pair(self, consumer_id: str, producer_id: str, pair: _PairUsage) -> Entity | None:
        entity_type = pair.entity_type
        pair_name = f"{consumer_id}->{producer_id}"
        if not self._supported_entity(entity_type, pair_name):
            return None

        entity_id = self.config.entity_id(entity_type, pair_name)
        key = pair.key or producer_id

        bought: list[Commodity] = []
        for commodity, used in pair.used.items():
            if not self._supported_commodity(commodity, entity_id):
                continue
            bought.append(Commodity(kind=commodity, used=used, key=key))

        result = create_entity(
            entity_type=entity_type,
            entity_id=entity_id,
            display_name=self.config.vapp_prefix + pair_name,
            bought=BoughtRelation(
                provider_id=self.config.entity_id(entity_type, producer_id),
                provider_type=entity_type,
                commodities=tuple(bought),
            ),
            stitching_property=self._property(consumer_id),
            stitching_rule=StitchingRule(
                attribute=self.config.stitching_attribute,
                external_attribute=self.config.stitching_attribute,
                patched_buying={c.kind: (USED,) for c in bought},
            ),
            monitored=False,
        )
        return self._accept(result, entity_id)


@dataclass
class _PairUsage:
    """Latest usage seen for one (consumer, producer) pair."""

    entity_type: EntityType
    used: dict[CommodityKind, float] = field(default_factory=dict)
    key: str | None = None


def _merged(samples: list[MetricSample]) -> MetricSample:
    """Fold all observations of one entity into a fresh sample."""
    first = samples[0]
    merged = MetricSample(
        kind=first.kind,
        entity_type=first.entity_type,
        identity=first.identity,
        labels=dict(first.labels),
        metrics=dict(first.metrics),
        capacities=dict(first.capacities),
    )
    for sample in samples[1:]:
        merged.merge(sample)
    return merged


def _commodity_key(sample: MetricSample, ip: str) -> str:
    """Key sold commodities by service when known, by IP otherwise."""
    namespace = sample.labels.get(SERVICE_NAMESPACE)
    service = sample.labels.get(SERVICE_NAME)
    if namespace and service:
        return f"{namespace}/{service}"
    return ip


def _declared_key(samples: list[MetricSample]) -> str | None:
    for sample in samples:
        key = sample.labels.get(KEY)
        if key:
            return key
    return None


def _log_unaggregated(samples, aggregated, entity_id: str) -> None:
    ignored = {c for s in samples for c in s.metrics} - set(aggregated)
    for commodity in sorted(ignored):
        logger.warning(
            "unsupported_commodity",
            builder="producer",
            entity_id=entity_id,
            commodity=commodity.value,
        )
