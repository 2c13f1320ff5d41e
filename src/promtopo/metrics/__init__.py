"""
Metric sample model shared by exporters and the topology engine.
"""

from promtopo.metrics.models import (
    CATEGORY,
    CONSUMER,
    IP,
    KEY,
    NAME,
    PRODUCER,
    SERVICE_NAME,
    SERVICE_NAMESPACE,
    CommodityKind,
    EntityType,
    MetricSample,
    SampleKind,
)

__all__ = [
    # Enums
    "SampleKind",
    "EntityType",
    "CommodityKind",
    # Model
    "MetricSample",
    # Label keys
    "PRODUCER",
    "CONSUMER",
    "KEY",
    "IP",
    "NAME",
    "SERVICE_NAME",
    "SERVICE_NAMESPACE",
    "CATEGORY",
]
