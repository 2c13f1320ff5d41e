"""Tests for the built-in query specs."""

import pytest

from promtopo.exporters.base import SampleParseError
from promtopo.exporters.queries import (
    GatewayQuerySpec,
    IstioQuerySpec,
    LabelMappedQuerySpec,
    build_query_specs,
    parse_value,
)
from promtopo.metrics import (
    CATEGORY,
    CONSUMER,
    PRODUCER,
    CommodityKind,
    EntityType,
    SampleKind,
)

ISTIO_LABELS = {
    "source_workload_namespace": "shop",
    "source_app": "web",
    "destination_workload_namespace": "shop",
    "destination_app": "cart",
}


def _series(labels, value="1.5"):
    return {"metric": dict(labels), "value": [1700000000.0, value]}


class TestParseValue:
    """Test sample value parsing."""

    def test_number(self):
        assert parse_value(_series({}, "2.25")) == 2.25

    @pytest.mark.parametrize("value", ["NaN", "+Inf", "abc"])
    def test_rejects_non_finite_or_garbage(self, value):
        with pytest.raises(SampleParseError):
            parse_value(_series({}, value))

    def test_missing_value(self):
        with pytest.raises(SampleParseError):
            parse_value({"metric": {}})


class TestIstioQuerySpec:
    """Test Istio series parsing."""

    def test_parse_relation(self):
        spec = IstioQuerySpec("istio_transaction", CommodityKind.TRANSACTION, "q")

        sample = spec.parse(_series(ISTIO_LABELS, "4"))

        assert sample.kind == SampleKind.RELATION
        assert sample.entity_type == EntityType.VIRTUAL_APPLICATION
        assert sample.identity == "shop/web->shop/cart"
        assert sample.labels[CONSUMER] == "shop/web"
        assert sample.labels[PRODUCER] == "shop/cart"
        assert sample.labels[CATEGORY] == "Istio"
        assert sample.metrics == {CommodityKind.TRANSACTION: 4.0}

    def test_missing_label(self):
        spec = IstioQuerySpec("istio_transaction", CommodityKind.TRANSACTION, "q")
        labels = {k: v for k, v in ISTIO_LABELS.items() if k != "source_app"}

        with pytest.raises(SampleParseError, match="source_app"):
            spec.parse(_series(labels))


class TestGatewayQuerySpec:
    """Test gateway series parsing."""

    LABELS = {
        "source_app": "gateway",
        "destination_workload_namespace": "openfaas-fn",
        "destination_service": "echo.openfaas-fn.svc.cluster.local",
        "request_path": "/function/echo",
    }

    def test_parse_allowed_namespace(self):
        spec = GatewayQuerySpec(
            "gateway_transaction", CommodityKind.TRANSACTION, "q", namespaces=["openfaas-fn"]
        )

        sample = spec.parse(_series(self.LABELS, "3"))

        assert sample.producer == "gateway/echo.openfaas-fn.svc.cluster.local/function/echo"
        assert sample.consumer is None
        assert sample.labels[CATEGORY] == "Gateway"

    def test_rejects_other_namespaces(self):
        spec = GatewayQuerySpec("gateway_transaction", CommodityKind.TRANSACTION, "q")

        with pytest.raises(SampleParseError, match="openfaas-fn"):
            spec.parse(_series(self.LABELS))


class TestLabelMappedQuerySpec:
    """Test configured label mappings."""

    def test_maps_labels_and_strips_port(self):
        spec = LabelMappedQuerySpec(
            "app_tx",
            "q",
            CommodityKind.TRANSACTION,
            labels={"ip": "instance", "name": "pod", "service_ns": "namespace"},
        )

        sample = spec.parse(
            _series({"instance": "10.0.0.1:8080", "pod": "web-1", "namespace": "shop"}, "6")
        )

        assert sample.kind == SampleKind.ENTITY
        assert sample.entity_type == EntityType.APPLICATION
        assert sample.identity == "10.0.0.1:8080"
        assert sample.labels["ip"] == "10.0.0.1"
        assert sample.labels["name"] == "web-1"
        assert sample.labels["service_ns"] == "shop"
        assert sample.labels[CATEGORY] == "Prometheus"

    def test_template_labels(self):
        spec = LabelMappedQuerySpec(
            "calls",
            "q",
            CommodityKind.TRANSACTION,
            kind=SampleKind.RELATION,
            entity_type=EntityType.VIRTUAL_APPLICATION,
            identity_label="{caller}->{callee}",
            labels={PRODUCER: "{ns}/{callee}", CONSUMER: "{ns}/{caller}"},
        )

        sample = spec.parse(_series({"caller": "web", "callee": "cart", "ns": "shop"}))

        assert sample.identity == "web->cart"
        assert sample.producer == "shop/cart"
        assert sample.consumer == "shop/web"

    def test_missing_identity(self):
        spec = LabelMappedQuerySpec("app_tx", "q", CommodityKind.TRANSACTION)

        with pytest.raises(SampleParseError):
            spec.parse(_series({"pod": "web-1"}))

    def test_unresolvable_template(self):
        spec = LabelMappedQuerySpec(
            "app_tx", "q", CommodityKind.TRANSACTION, labels={PRODUCER: "{missing}"}
        )

        with pytest.raises(SampleParseError):
            spec.parse(_series({"instance": "10.0.0.1"}))


class TestBuildQuerySpecs:
    """Test built-in source lookup."""

    def test_sources(self):
        specs = build_query_specs(["istio", "application"])

        assert [s.name for s in specs] == [
            "istio_transaction",
            "istio_response_time",
            "application_transaction",
            "application_response_time",
        ]

    def test_gateway_namespaces_passed(self):
        specs = build_query_specs(["gateway"], gateway_namespaces=["fn"])

        assert all(spec.namespaces == frozenset({"fn"}) for spec in specs)

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="unknown-source"):
            build_query_specs(["unknown-source"])
