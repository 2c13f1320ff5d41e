"""Tests for the Prometheus client and exporter."""

import logging

import pytest
import respx
from circuitbreaker import CircuitBreakerError
from httpx import Response
from tenacity import wait_none

from promtopo.exporters.base import ExporterError
from promtopo.exporters.client import (
    PermanentHTTPError,
    PrometheusClient,
    PrometheusQueryError,
    RetryableHTTPError,
    is_retryable_status,
)
from promtopo.exporters.prometheus import PrometheusExporter
from promtopo.exporters.queries import (
    ISTIO_RESPONSE_TIME_QUERY,
    ISTIO_TRANSACTION_QUERY,
    istio_query_specs,
)
from promtopo.metrics import CommodityKind

PROMETHEUS_URL = "http://prometheus:9090"
QUERY_URL = f"{PROMETHEUS_URL}/api/v1/query"
BUILDINFO_URL = f"{PROMETHEUS_URL}/api/v1/status/buildinfo"


def _vector(*series):
    return {"status": "success", "data": {"resultType": "vector", "result": list(series)}}


def _istio_series(source, destination, value):
    return {
        "metric": {
            "source_workload_namespace": "shop",
            "source_app": source,
            "destination_workload_namespace": "shop",
            "destination_app": destination,
        },
        "value": [1700000000.0, value],
    }


class TestPrometheusClient:
    """Test the Prometheus API client."""

    def test_retryable_status(self):
        assert is_retryable_status(503)
        assert is_retryable_status(429)
        assert not is_retryable_status(400)

    def test_url_trailing_slash_stripped(self):
        assert PrometheusClient(f"{PROMETHEUS_URL}/").url == PROMETHEUS_URL

    @respx.mock
    async def test_query_success(self):
        route = respx.get(QUERY_URL).mock(
            return_value=Response(200, json=_vector(_istio_series("web", "cart", "2")))
        )

        client = PrometheusClient(PROMETHEUS_URL)
        result = await client.query("up")

        assert len(result) == 1
        assert result[0]["metric"]["destination_app"] == "cart"
        assert route.calls.last.request.url.params["query"] == "up"

    @respx.mock
    async def test_query_error_status(self):
        respx.get(QUERY_URL).mock(
            return_value=Response(200, json={"status": "error", "error": "parse error"})
        )

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(PrometheusQueryError, match="parse error"):
            await client.query("sum(")

    @respx.mock
    async def test_query_rejects_non_vector(self):
        respx.get(QUERY_URL).mock(
            return_value=Response(
                200, json={"status": "success", "data": {"resultType": "matrix", "result": []}}
            )
        )

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(PrometheusQueryError, match="matrix"):
            await client.query("up[5m]")

    @respx.mock
    async def test_permanent_error_not_retried(self):
        route = respx.get(QUERY_URL).mock(return_value=Response(400, json={"error": "bad"}))

        client = PrometheusClient(PROMETHEUS_URL)
        with pytest.raises(PermanentHTTPError):
            await client.query("up")

        assert route.call_count == 1

    @respx.mock
    async def test_basic_auth(self):
        route = respx.get(QUERY_URL).mock(return_value=Response(200, json=_vector()))

        client = PrometheusClient(PROMETHEUS_URL, username="user", password="secret")
        await client.query("up")

        assert route.calls.last.request.headers["Authorization"].startswith("Basic ")

    @respx.mock
    async def test_bearer_token(self):
        route = respx.get(QUERY_URL).mock(return_value=Response(200, json=_vector()))

        client = PrometheusClient(PROMETHEUS_URL, bearer_token="tok")
        await client.query("up")

        assert route.calls.last.request.headers["Authorization"] == "Bearer tok"

    @respx.mock
    async def test_health_check_healthy(self):
        respx.get(BUILDINFO_URL).mock(
            return_value=Response(200, json={"status": "success", "data": {}})
        )

        health = await PrometheusClient(PROMETHEUS_URL).health_check()

        assert health.healthy
        assert health.latency_ms is not None

    @respx.mock
    async def test_health_check_unhealthy(self):
        respx.get(BUILDINFO_URL).mock(return_value=Response(503))

        health = await PrometheusClient(PROMETHEUS_URL).health_check()

        assert not health.healthy
        assert "503" in health.message


class TestPrometheusExporter:
    """Test the Prometheus exporter."""

    @staticmethod
    def _handler(request):
        query = request.url.params["query"]
        if query == ISTIO_TRANSACTION_QUERY:
            return Response(
                200,
                json=_vector(
                    _istio_series("web", "cart", "10"),
                    _istio_series("web", "pay", "2"),
                    {"metric": {"source_app": "web"}, "value": [0, "1"]},
                ),
            )
        if query == ISTIO_RESPONSE_TIME_QUERY:
            return Response(200, json=_vector(_istio_series("web", "cart", "85.5")))
        return Response(400, json={"error": "unexpected query"})

    @respx.mock
    async def test_query_merges_samples_per_pair(self):
        respx.get(QUERY_URL).mock(side_effect=self._handler)
        exporter = PrometheusExporter(
            "istio", PrometheusClient(PROMETHEUS_URL), istio_query_specs()
        )

        samples = await exporter.query()

        by_identity = {s.identity: s for s in samples}
        assert set(by_identity) == {"shop/web->shop/cart", "shop/web->shop/pay"}
        assert by_identity["shop/web->shop/cart"].metrics == {
            CommodityKind.TRANSACTION: 10.0,
            CommodityKind.RESPONSE_TIME: 85.5,
        }
        assert by_identity["shop/web->shop/pay"].metrics == {CommodityKind.TRANSACTION: 2.0}

    @respx.mock
    async def test_query_failure_raises_exporter_error(self):
        respx.get(QUERY_URL).mock(return_value=Response(400, json={"error": "bad"}))
        exporter = PrometheusExporter(
            "istio", PrometheusClient(PROMETHEUS_URL), istio_query_specs()
        )

        with pytest.raises(ExporterError, match="istio_transaction"):
            await exporter.query()

    @respx.mock
    async def test_validate(self):
        respx.get(BUILDINFO_URL).mock(return_value=Response(200, json={}))
        exporter = PrometheusExporter("istio", PrometheusClient(PROMETHEUS_URL), [])

        assert await exporter.validate() is True

    def test_describe(self):
        exporter = PrometheusExporter("istio", PrometheusClient(PROMETHEUS_URL), [])

        assert exporter.describe() == "istio (http://prometheus:9090)"

    @respx.mock
    async def test_query_logs_under_exporter_module(self, caplog):
        respx.get(QUERY_URL).mock(return_value=Response(400, json={"error": "bad"}))
        exporter = PrometheusExporter(
            "istio", PrometheusClient(PROMETHEUS_URL), istio_query_specs()
        )

        with caplog.at_level(logging.ERROR), pytest.raises(ExporterError):
            await exporter.query()

        failures = [r for r in caplog.records if "query_failed" in r.getMessage()]
        assert len(failures) == 1
        assert failures[0].name == "promtopo.exporters.prometheus"
        assert "istio" in failures[0].getMessage()


class TestCircuitBreaker:
    """Test per-client circuit breakers."""

    def test_clients_have_separate_breakers(self):
        first = PrometheusClient("http://a.test")
        second = PrometheusClient("http://b.test")

        assert first.breaker is not second.breaker
        assert first.breaker.name == "http://a.test"

    @respx.mock
    async def test_breaker_opens_after_threshold(self, monkeypatch):
        monkeypatch.setattr(PrometheusClient._request.retry, "wait", wait_none())
        route = respx.get(QUERY_URL).mock(return_value=Response(503))
        client = PrometheusClient(PROMETHEUS_URL, failure_threshold=1)

        with pytest.raises(RetryableHTTPError):
            await client.query("up")
        assert client.breaker.opened
        calls = route.call_count

        with pytest.raises(CircuitBreakerError):
            await client.query("up")
        assert route.call_count == calls
