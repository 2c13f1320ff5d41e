"""
Topology discovery.

Runs metric exporters and builds the entity topology of a discovery pass.
"""

from promtopo.discovery.models import (
    DiscoveryResult,
    ErrorRecord,
    Severity,
    ValidationResult,
)
from promtopo.discovery.orchestrator import TopologyDiscovery

__all__ = [
    "TopologyDiscovery",
    "DiscoveryResult",
    "ValidationResult",
    "ErrorRecord",
    "Severity",
]
