"""
Discovery configuration models.

Describes the exporters to run and the topology options of a discovery
pass, as read from a YAML configuration file on top of Settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from promtopo.config.settings import Settings
from promtopo.exporters.queries import QUERY_SOURCES, LabelMappedQuerySpec
from promtopo.metrics import CommodityKind, EntityType, SampleKind
from promtopo.topology.models import TopologyConfig


class ConfigError(ValueError):
    """Raised when the configuration is invalid."""


def _enum(enum_cls: type, value: Any, field_name: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Invalid {field_name} {value!r}, expected one of: {choices}") from exc


def _number(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} is not a number: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} is not a number: {value!r}") from exc


def _flag(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "on", "1"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "no", "off", "0"):
        return False
    raise ConfigError(f"{field_name} must be true or false, got {value!r}")


def _string_list(value: Any, field_name: str) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{field_name} must be a list, got {value!r}")
    return [str(v) for v in value]


@dataclass
class QueryConfig:
    """A custom label-mapped query."""

    name: str
    query: str
    commodity: CommodityKind
    kind: SampleKind = SampleKind.ENTITY
    entity_type: EntityType = EntityType.APPLICATION
    identity_label: str = "instance"
    labels: dict[str, str] = field(default_factory=dict)

    def to_query_spec(self) -> LabelMappedQuerySpec:
        return LabelMappedQuerySpec(
            self.name,
            self.query,
            self.commodity,
            kind=self.kind,
            entity_type=self.entity_type,
            identity_label=self.identity_label,
            labels=self.labels,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "query": self.query,
            "commodity": self.commodity.value,
            "kind": self.kind.value,
            "entity_type": self.entity_type.value,
            "identity_label": self.identity_label,
            "labels": self.labels,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryConfig:
        for required in ("name", "query", "commodity"):
            if not data.get(required):
                raise ConfigError(f"Query is missing {required!r}: {data}")

        return cls(
            name=data["name"],
            query=data["query"],
            commodity=_enum(CommodityKind, data["commodity"], "commodity"),
            kind=_enum(SampleKind, data.get("kind", "entity"), "kind"),
            entity_type=_enum(EntityType, data.get("entity_type", "application"), "entity_type"),
            identity_label=data.get("identity_label", "instance"),
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
        )


@dataclass
class ExporterConfig:
    """Configuration of one Prometheus exporter."""

    name: str
    url: str = "http://localhost:9090"
    sources: list[str] = field(default_factory=list)
    # None means the built-in allow-list; [] admits no gateway traffic
    gateway_namespaces: list[str] | None = None
    username: str | None = None
    password: str | None = None
    bearer_token: str | None = None
    timeout: float = 30.0
    queries: list[QueryConfig] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "sources": self.sources,
            "gateway_namespaces": self.gateway_namespaces,
            "username": self.username,
            "timeout": self.timeout,
            "queries": [q.to_dict() for q in self.queries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], settings: Settings) -> ExporterConfig:
        if not data.get("name"):
            raise ConfigError(f"Exporter is missing 'name': {data}")

        sources = list(data.get("sources", settings.sources if not data.get("queries") else []))
        unknown = [s for s in sources if s not in QUERY_SOURCES]
        if unknown:
            raise ConfigError(
                f"Exporter {data['name']!r} has unknown sources {unknown}, "
                f"expected any of {sorted(QUERY_SOURCES)}"
            )

        return cls(
            name=data["name"],
            url=data.get("url", settings.prometheus_url),
            sources=sources,
            gateway_namespaces=_string_list(
                data.get("gateway_namespaces", settings.gateway_namespaces),
                f"Exporter {data['name']!r} gateway_namespaces",
            ),
            username=data.get("username", settings.metrics_user),
            password=data.get("password", settings.metrics_password),
            bearer_token=data.get("bearer_token", settings.bearer_token),
            timeout=_number(
                data.get("timeout", settings.http_timeout),
                f"Exporter {data['name']!r} timeout",
            ),
            queries=[QueryConfig.from_dict(q) for q in data.get("queries", [])],
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ExporterConfig:
        return cls(
            name="prometheus",
            url=settings.prometheus_url,
            sources=list(settings.sources),
            gateway_namespaces=list(settings.gateway_namespaces),
            username=settings.metrics_user,
            password=settings.metrics_password,
            bearer_token=settings.bearer_token,
            timeout=settings.http_timeout,
        )


@dataclass
class DiscoveryConfig:
    """Everything needed to run discovery."""

    scope: str = "default"
    keep_standalone: bool = False
    create_proxy_vm: bool = False
    capacities: dict[CommodityKind, float] = field(default_factory=dict)
    exporters: list[ExporterConfig] = field(default_factory=list)

    def to_topology_config(self) -> TopologyConfig:
        return TopologyConfig(
            scope=self.scope,
            capacities=dict(self.capacities),
            keep_standalone=self.keep_standalone,
            create_proxy_vm=self.create_proxy_vm,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "keep_standalone": self.keep_standalone,
            "create_proxy_vm": self.create_proxy_vm,
            "capacities": {k.value: v for k, v in self.capacities.items()},
            "exporters": [e.to_dict() for e in self.exporters],
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> DiscoveryConfig:
        return cls(
            scope=settings.scope,
            keep_standalone=settings.keep_standalone,
            create_proxy_vm=settings.create_proxy_vm,
            capacities=_settings_capacities(settings),
            exporters=[ExporterConfig.from_settings(settings)],
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any], settings: Settings) -> DiscoveryConfig:
        capacities = _settings_capacities(settings)
        for name, value in (data.get("capacities") or {}).items():
            commodity = _enum(CommodityKind, name, "capacity commodity")
            capacities[commodity] = _number(value, f"Capacity for {name}")

        exporters = [ExporterConfig.from_dict(e, settings) for e in data.get("exporters") or []]
        if not exporters:
            exporters = [ExporterConfig.from_settings(settings)]

        names = [e.name for e in exporters]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate exporter names: {duplicates}")

        return cls(
            scope=str(data.get("scope", settings.scope)),
            keep_standalone=_flag(
                data.get("keep_standalone", settings.keep_standalone), "keep_standalone"
            ),
            create_proxy_vm=_flag(
                data.get("create_proxy_vm", settings.create_proxy_vm), "create_proxy_vm"
            ),
            capacities=capacities,
            exporters=exporters,
        )


def _settings_capacities(settings: Settings) -> dict[CommodityKind, float]:
    return {
        CommodityKind.TRANSACTION: settings.transaction_capacity,
        CommodityKind.RESPONSE_TIME: settings.response_time_capacity,
    }
