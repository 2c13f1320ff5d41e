"""
Metric-to-topology mapping.

Correlates metric samples into producer/consumer groups, aggregates
their commodity usage, and builds the stitchable entities of the
topology.
"""

from promtopo.topology.builders import (
    ConsumerEntityBuilder,
    EntityBuilder,
    ProducerEntityBuilder,
    StandaloneEntityBuilder,
)
from promtopo.topology.correlation import (
    CommodityAggregate,
    CorrelationGroups,
    Correlator,
    UnknownSampleKindError,
    merge_groups,
)
from promtopo.topology.factory import BuildResult, create_entity, validate_commodity
from promtopo.topology.models import (
    BoughtRelation,
    Commodity,
    Entity,
    EntityProperty,
    StitchingRule,
    TopologyConfig,
    get_entity_id,
)

__all__ = [
    # Models
    "Entity",
    "Commodity",
    "BoughtRelation",
    "EntityProperty",
    "StitchingRule",
    "TopologyConfig",
    "get_entity_id",
    # Correlation
    "Correlator",
    "CorrelationGroups",
    "CommodityAggregate",
    "UnknownSampleKindError",
    "merge_groups",
    # Construction
    "BuildResult",
    "create_entity",
    "validate_commodity",
    # Builders
    "EntityBuilder",
    "StandaloneEntityBuilder",
    "ProducerEntityBuilder",
    "ConsumerEntityBuilder",
]
