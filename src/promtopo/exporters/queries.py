"""
Built-in query specs.

Each query spec pairs a PromQL query with a parser that turns one result
series into a MetricSample:

- istio: request rate and mean latency per source/destination workload
  pair, correlated as consumer and producer
- gateway: request rate and latency of gateway-routed traffic, keyed by
  source app, service host and path, restricted to an allow-list of
  gateway namespaces
- application: request rate and latency per instance, as directly
  observed application entities
- LabelMappedQuerySpec: custom queries whose sample labels are mapped
  from raw labels by configuration
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from typing import Any

from promtopo.exporters.base import QuerySpec, SampleParseError
from promtopo.metrics import (
    CATEGORY,
    CONSUMER,
    IP,
    NAME,
    PRODUCER,
    SERVICE_NAME,
    SERVICE_NAMESPACE,
    CommodityKind,
    EntityType,
    MetricSample,
    SampleKind,
)

# Istio standard metric labels
ISTIO_SOURCE_NAMESPACE = "source_workload_namespace"
ISTIO_SOURCE_APP = "source_app"
ISTIO_DESTINATION_NAMESPACE = "destination_workload_namespace"
ISTIO_DESTINATION_APP = "destination_app"
ISTIO_DESTINATION_SERVICE = "destination_service"
ISTIO_REQUEST_PATH = "request_path"

ISTIO_GROUPING = ", ".join(
    [ISTIO_SOURCE_NAMESPACE, ISTIO_SOURCE_APP, ISTIO_DESTINATION_NAMESPACE, ISTIO_DESTINATION_APP]
)
ISTIO_TRANSACTION_QUERY = (
    f'sum(rate(istio_requests_total{{reporter="destination"}}[1m])) by ({ISTIO_GROUPING})'
)
ISTIO_RESPONSE_TIME_QUERY = (
    f"sum(rate(istio_request_duration_milliseconds_sum{{reporter=\"destination\"}}[1m]))"
    f" by ({ISTIO_GROUPING})"
    f" / sum(rate(istio_request_duration_milliseconds_count{{reporter=\"destination\"}}[1m]))"
    f" by ({ISTIO_GROUPING})"
)

GATEWAY_GROUPING = ", ".join(
    [ISTIO_SOURCE_APP, ISTIO_DESTINATION_NAMESPACE, ISTIO_DESTINATION_SERVICE, ISTIO_REQUEST_PATH]
)
GATEWAY_TRANSACTION_QUERY = (
    f'sum(rate(istio_requests_total{{reporter="source"}}[1m])) by ({GATEWAY_GROUPING})'
)
GATEWAY_RESPONSE_TIME_QUERY = (
    f"sum(rate(istio_request_duration_milliseconds_sum{{reporter=\"source\"}}[1m]))"
    f" by ({GATEWAY_GROUPING})"
    f" / sum(rate(istio_request_duration_milliseconds_count{{reporter=\"source\"}}[1m]))"
    f" by ({GATEWAY_GROUPING})"
)
DEFAULT_GATEWAY_NAMESPACES = ("openfaas",)

APPLICATION_GROUPING = "instance, pod, namespace, service"
APPLICATION_TRANSACTION_QUERY = (
    f"sum(rate(http_server_requests_seconds_count[1m])) by ({APPLICATION_GROUPING})"
)
APPLICATION_RESPONSE_TIME_QUERY = (
    f"1000 * sum(rate(http_server_requests_seconds_sum[1m])) by ({APPLICATION_GROUPING})"
    f" / sum(rate(http_server_requests_seconds_count[1m])) by ({APPLICATION_GROUPING})"
)
APPLICATION_LABELS = {
    IP: "instance",
    NAME: "pod",
    SERVICE_NAMESPACE: "namespace",
    SERVICE_NAME: "service",
}


def parse_value(series: dict[str, Any]) -> float:
    """Extract the finite sample value of an instant-vector series."""
    value = series.get("value") or []
    if len(value) < 2:
        raise SampleParseError(f"Series has no value: {series.get('metric', {})}")

    try:
        number = float(value[1])
    except (TypeError, ValueError) as exc:
        raise SampleParseError(f"Series value {value[1]!r} is not a number") from exc

    if not math.isfinite(number):
        raise SampleParseError(f"Series value {value[1]!r} is not finite")
    return number


def require_labels(series: dict[str, Any], names: Iterable[str]) -> dict[str, str]:
    """Get the named labels of a series, all of which must be non-empty."""
    metric = series.get("metric", {})
    missing = [name for name in names if not metric.get(name)]
    if missing:
        raise SampleParseError(f"Missing labels {missing} in {metric}")
    return {name: metric[name] for name in names}


def _strip_port(address: str) -> str:
    host, sep, port = address.rpartition(":")
    if sep and port.isdigit() and host:
        return host.strip("[]")
    return address


class IstioQuerySpec(QuerySpec):
    """Istio request metrics between two workloads."""

    category = "Istio"

    def __init__(self, name: str, commodity: CommodityKind, query: str) -> None:
        self._name = name
        self._commodity = commodity
        self._query = query

    @property
    def name(self) -> str:
        return self._name

    @property
    def commodity(self) -> CommodityKind:
        return self._commodity

    @property
    def query(self) -> str:
        return self._query

    def parse(self, series: dict[str, Any]) -> MetricSample:
        labels = require_labels(
            series,
            [
                ISTIO_SOURCE_NAMESPACE,
                ISTIO_SOURCE_APP,
                ISTIO_DESTINATION_NAMESPACE,
                ISTIO_DESTINATION_APP,
            ],
        )
        value = parse_value(series)

        consumer_id = f"{labels[ISTIO_SOURCE_NAMESPACE]}/{labels[ISTIO_SOURCE_APP]}"
        producer_id = f"{labels[ISTIO_DESTINATION_NAMESPACE]}/{labels[ISTIO_DESTINATION_APP]}"

        sample = MetricSample(
            kind=SampleKind.RELATION,
            entity_type=EntityType.VIRTUAL_APPLICATION,
            identity=f"{consumer_id}->{producer_id}",
        )
        sample.set_label(CONSUMER, consumer_id)
        sample.set_label(PRODUCER, producer_id)
        sample.set_label(CATEGORY, self.category)
        sample.set_metric(self._commodity, value)
        return sample


class GatewayQuerySpec(QuerySpec):
    """
    Request metrics of traffic routed through an API gateway.

    The producer id is ``<source app>/<service host><path>``. Only series
    whose destination namespace is in ``namespaces`` are retained.
    """

    category = "Gateway"

    def __init__(
        self,
        name: str,
        commodity: CommodityKind,
        query: str,
        namespaces: Iterable[str] = DEFAULT_GATEWAY_NAMESPACES,
    ) -> None:
        self._name = name
        self._commodity = commodity
        self._query = query
        self.namespaces = frozenset(namespaces)

    @property
    def name(self) -> str:
        return self._name

    @property
    def commodity(self) -> CommodityKind:
        return self._commodity

    @property
    def query(self) -> str:
        return self._query

    def parse(self, series: dict[str, Any]) -> MetricSample:
        labels = require_labels(
            series,
            [
                ISTIO_SOURCE_APP,
                ISTIO_DESTINATION_NAMESPACE,
                ISTIO_DESTINATION_SERVICE,
                ISTIO_REQUEST_PATH,
            ],
        )

        namespace = labels[ISTIO_DESTINATION_NAMESPACE]
        if namespace not in self.namespaces:
            raise SampleParseError(
                f"Namespace {namespace!r} is not a gateway namespace {sorted(self.namespaces)}"
            )

        value = parse_value(series)
        producer_id = (
            f"{labels[ISTIO_SOURCE_APP]}/"
            f"{labels[ISTIO_DESTINATION_SERVICE]}{labels[ISTIO_REQUEST_PATH]}"
        )

        sample = MetricSample(
            kind=SampleKind.RELATION,
            entity_type=EntityType.VIRTUAL_APPLICATION,
            identity=producer_id,
        )
        sample.set_label(PRODUCER, producer_id)
        sample.set_label(CATEGORY, self.category)
        sample.set_metric(self._commodity, value)
        return sample


class LabelMappedQuerySpec(QuerySpec):
    """
    Query spec configured by label mappings.

    ``labels`` maps sample label -> raw label. A raw label written as a
    template (``"{namespace}/{app}"``) is formatted from the series
    labels, which lets custom queries produce PRODUCER / CONSUMER keys.
    The ``ip`` label has any ``:port`` suffix removed.
    """

    def __init__(
        self,
        name: str,
        query: str,
        commodity: CommodityKind,
        *,
        kind: SampleKind = SampleKind.ENTITY,
        entity_type: EntityType = EntityType.APPLICATION,
        identity_label: str = "instance",
        labels: dict[str, str] | None = None,
        category: str = "Prometheus",
    ) -> None:
        self._name = name
        self._query = query
        self._commodity = commodity
        self.kind = kind
        self.entity_type = entity_type
        self.identity_label = identity_label
        self.labels = dict(labels or {})
        self.category = category

    @property
    def name(self) -> str:
        return self._name

    @property
    def commodity(self) -> CommodityKind:
        return self._commodity

    @property
    def query(self) -> str:
        return self._query

    def _resolve(self, source: str, metric: dict[str, str]) -> str | None:
        if "{" in source:
            try:
                return source.format_map(metric)
            except (KeyError, IndexError, ValueError) as exc:
                raise SampleParseError(f"Cannot format {source!r} from {metric}: {exc}") from exc
        return metric.get(source) or None

    def parse(self, series: dict[str, Any]) -> MetricSample:
        metric = series.get("metric", {})
        identity = self._resolve(self.identity_label, metric)
        if not identity:
            raise SampleParseError(f"Missing identity label {self.identity_label!r} in {metric}")
        value = parse_value(series)

        sample = MetricSample(kind=self.kind, entity_type=self.entity_type, identity=identity)
        for target, source in self.labels.items():
            resolved = self._resolve(source, metric)
            if resolved is None:
                continue
            if target == IP:
                resolved = _strip_port(resolved)
            sample.set_label(target, resolved)
        sample.set_label(CATEGORY, self.category)
        sample.set_metric(self._commodity, value)
        return sample


def istio_query_specs(**_options: Any) -> list[QuerySpec]:
    return [
        IstioQuerySpec("istio_transaction", CommodityKind.TRANSACTION, ISTIO_TRANSACTION_QUERY),
        IstioQuerySpec(
            "istio_response_time", CommodityKind.RESPONSE_TIME, ISTIO_RESPONSE_TIME_QUERY
        ),
    ]


def gateway_query_specs(
    *, gateway_namespaces: Iterable[str] = DEFAULT_GATEWAY_NAMESPACES, **_options: Any
) -> list[QuerySpec]:
    namespaces = tuple(gateway_namespaces)
    return [
        GatewayQuerySpec(
            "gateway_transaction",
            CommodityKind.TRANSACTION,
            GATEWAY_TRANSACTION_QUERY,
            namespaces,
        ),
        GatewayQuerySpec(
            "gateway_response_time",
            CommodityKind.RESPONSE_TIME,
            GATEWAY_RESPONSE_TIME_QUERY,
            namespaces,
        ),
    ]


def application_query_specs(**_options: Any) -> list[QuerySpec]:
    return [
        LabelMappedQuerySpec(
            "application_transaction",
            APPLICATION_TRANSACTION_QUERY,
            CommodityKind.TRANSACTION,
            labels=APPLICATION_LABELS,
        ),
        LabelMappedQuerySpec(
            "application_response_time",
            APPLICATION_RESPONSE_TIME_QUERY,
            CommodityKind.RESPONSE_TIME,
            labels=APPLICATION_LABELS,
        ),
    ]


QUERY_SOURCES: dict[str, Callable[..., list[QuerySpec]]] = {
    "istio": istio_query_specs,
    "gateway": gateway_query_specs,
    "application": application_query_specs,
}


def build_query_specs(
    sources: Iterable[str],
    *,
    gateway_namespaces: Iterable[str] | None = None,
) -> list[QuerySpec]:
    """
    Get the query specs of the named built-in sources.

    Raises:
        ValueError: If a source name is unknown
    """
    options: dict[str, Any] = {}
    if gateway_namespaces is not None:
        options["gateway_namespaces"] = tuple(gateway_namespaces)

    specs: list[QuerySpec] = []
    for source in sources:
        factory = QUERY_SOURCES.get(source)
        if factory is None:
            raise ValueError(
                f"Unknown query source {source!r}, expected one of {sorted(QUERY_SOURCES)}"
            )
        specs.extend(factory(**options))
    return specs
