"""
Discovery result models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from promtopo.topology.models import Entity


class Severity(StrEnum):
    """Severity of a reported discovery failure."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    WARNING = "warning"


@dataclass
class ErrorRecord:
    """A structured failure reported in place of a result."""

    severity: Severity
    description: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"severity": self.severity.value, "description": self.description}


@dataclass
class ValidationResult:
    """Result of checking exporter connectivity."""

    reachable: str | None = None
    exporters_checked: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    failure: ErrorRecord | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "ok": self.ok,
            "reachable": self.reachable,
            "exporters_checked": self.exporters_checked,
            "errors": self.errors,
            "failure": self.failure.to_dict() if self.failure else None,
        }


@dataclass
class DiscoveryResult:
    """Result of one discovery pass."""

    entities: list[Entity] = field(default_factory=list)
    exporters_queried: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    sample_count: int = 0
    failure: ErrorRecord | None = None
    discovered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def partial(self) -> bool:
        """True when the pass succeeded but some exporters failed."""
        return self.ok and bool(self.errors)

    @property
    def entity_count(self) -> int:
        return len(self.entities)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "ok": self.ok,
            "discovered_at": self.discovered_at.isoformat(),
            "exporters_queried": self.exporters_queried,
            "errors": self.errors,
            "failure": self.failure.to_dict() if self.failure else None,
            "stats": {
                "sample_count": self.sample_count,
                "entity_count": self.entity_count,
            },
            "entities": [e.to_dict() for e in self.entities],
        }
