"""Tests for settings and configuration file loading."""

from pathlib import Path

import pytest
import yaml

from promtopo.config import (
    ConfigError,
    DiscoveryConfig,
    QueryConfig,
    Settings,
    build_exporters,
    get_config_path,
    get_settings,
    load_config,
)
from promtopo.exporters.queries import GatewayQuerySpec, LabelMappedQuerySpec
from promtopo.metrics import CommodityKind, EntityType, SampleKind


def _write_config(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data))
    return path


class TestSettings:
    """Test environment-based settings."""

    def test_defaults(self):
        settings = Settings()

        assert settings.prometheus_url == "http://localhost:9090"
        assert settings.sources == ["istio"]
        assert settings.transaction_capacity == 20.0
        assert settings.response_time_capacity == 500.0

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("PROMTOPO_PROMETHEUS_URL", "http://prom:9090")
        monkeypatch.setenv("PROMTOPO_SCOPE", "prod")
        monkeypatch.setenv("PROMTOPO_SOURCES", '["istio", "gateway"]')

        settings = get_settings()

        assert settings.prometheus_url == "http://prom:9090"
        assert settings.scope == "prod"
        assert settings.sources == ["istio", "gateway"]


class TestGetConfigPath:
    """Test config file search order."""

    def test_no_config(self):
        assert get_config_path() is None

    def test_explicit_path(self, tmp_path):
        path = _write_config(tmp_path / "custom.yaml", {})
        assert get_config_path(path) == path

    def test_explicit_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            get_config_path(tmp_path / "missing.yaml")

    def test_cwd_before_home(self, tmp_path):
        cwd_config = _write_config(tmp_path / ".promtopo" / "config.yaml", {})
        _write_config(tmp_path / "home" / ".promtopo" / "config.yaml", {})

        assert get_config_path() == cwd_config

    def test_home_config(self, tmp_path):
        home_config = _write_config(tmp_path / "home" / ".promtopo" / "config.yaml", {})

        assert get_config_path() == home_config


class TestLoadConfig:
    """Test loading discovery configuration."""

    def test_from_settings_without_file(self):
        config = load_config(settings=Settings(prometheus_url="http://prom:9090"))

        assert config.scope == "default"
        assert len(config.exporters) == 1
        assert config.exporters[0].url == "http://prom:9090"
        assert config.exporters[0].sources == ["istio"]
        assert config.capacities[CommodityKind.TRANSACTION] == 20.0

    def test_full_file(self, tmp_path):
        path = _write_config(
            tmp_path / "config.yaml",
            {
                "scope": "prod",
                "create_proxy_vm": True,
                "capacities": {"transaction": 50},
                "exporters": [
                    {
                        "name": "mesh",
                        "url": "http://istio-prom:9090",
                        "sources": ["istio", "gateway"],
                        "gateway_namespaces": ["openfaas-fn"],
                    },
                    {
                        "name": "apps",
                        "url": "http://apps-prom:9090",
                        "username": "reader",
                        "password": "secret",
                        "queries": [
                            {
                                "name": "jvm_requests",
                                "query": "sum(rate(requests_total[1m])) by (instance)",
                                "commodity": "transaction",
                                "labels": {"ip": "instance"},
                            }
                        ],
                    },
                ],
            },
        )

        config = load_config(path, Settings())

        assert config.scope == "prod"
        assert config.create_proxy_vm is True
        assert config.capacities[CommodityKind.TRANSACTION] == 50.0
        assert config.capacities[CommodityKind.RESPONSE_TIME] == 500.0
        mesh, apps = config.exporters
        assert mesh.gateway_namespaces == ["openfaas-fn"]
        assert apps.sources == []
        assert apps.username == "reader"
        assert apps.queries[0].commodity == CommodityKind.TRANSACTION

    def test_empty_file_uses_settings(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        config = load_config(path, Settings(scope="staging"))

        assert config.scope == "staging"
        assert config.exporters[0].name == "prometheus"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("exporters: [unclosed")

        with pytest.raises(ConfigError):
            load_config(path, Settings())

    def test_non_mapping(self, tmp_path):
        path = _write_config(tmp_path / "config.yaml", ["a", "b"])

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path, Settings())

    def test_unknown_source(self, tmp_path):
        path = _write_config(
            tmp_path / "config.yaml", {"exporters": [{"name": "x", "sources": ["nope"]}]}
        )

        with pytest.raises(ConfigError, match="nope"):
            load_config(path, Settings())

    def test_duplicate_exporter_names(self, tmp_path):
        path = _write_config(
            tmp_path / "config.yaml",
            {"exporters": [{"name": "x"}, {"name": "x"}]},
        )

        with pytest.raises(ConfigError, match="Duplicate"):
            load_config(path, Settings())

    def test_bad_capacity(self, tmp_path):
        path = _write_config(tmp_path / "config.yaml", {"capacities": {"transaction": "lots"}})

        with pytest.raises(ConfigError, match="not a number"):
            load_config(path, Settings())

    def test_bad_timeout(self, tmp_path):
        path = _write_config(
            tmp_path / "config.yaml", {"exporters": [{"name": "x", "timeout": "slow"}]}
        )

        with pytest.raises(ConfigError, match="timeout"):
            load_config(path, Settings())

    def test_string_flags(self):
        config = DiscoveryConfig.from_dict(
            {"keep_standalone": "false", "create_proxy_vm": "yes"}, Settings()
        )

        assert config.keep_standalone is False
        assert config.create_proxy_vm is True

    def test_bad_flag(self):
        with pytest.raises(ConfigError, match="keep_standalone"):
            DiscoveryConfig.from_dict({"keep_standalone": "sometimes"}, Settings())

    def test_gateway_namespaces_must_be_list(self):
        with pytest.raises(ConfigError, match="gateway_namespaces"):
            DiscoveryConfig.from_dict(
                {"exporters": [{"name": "gw", "gateway_namespaces": "openfaas"}]}, Settings()
            )


class TestQueryConfig:
    """Test custom query configuration."""

    def test_from_dict(self):
        query = QueryConfig.from_dict(
            {
                "name": "calls",
                "query": "q",
                "commodity": "RESPONSE_TIME",
                "kind": "relation",
                "entity_type": "virtual_application",
                "identity_label": "{src}->{dst}",
                "labels": {"PRODUCER": "{dst}"},
            }
        )

        assert query.commodity == CommodityKind.RESPONSE_TIME
        assert query.kind == SampleKind.RELATION
        assert query.entity_type == EntityType.VIRTUAL_APPLICATION

        spec = query.to_query_spec()
        assert isinstance(spec, LabelMappedQuerySpec)
        assert spec.identity_label == "{src}->{dst}"

    def test_missing_field(self):
        with pytest.raises(ConfigError, match="query"):
            QueryConfig.from_dict({"name": "calls", "commodity": "transaction"})

    def test_invalid_commodity(self):
        with pytest.raises(ConfigError, match="expected one of"):
            QueryConfig.from_dict({"name": "calls", "query": "q", "commodity": "bandwidth"})


class TestBuildExporters:
    """Test exporter construction."""

    def test_builds_exporter_per_config(self):
        config = DiscoveryConfig.from_dict(
            {
                "exporters": [
                    {"name": "mesh", "url": "http://prom:9090/", "sources": ["gateway"]},
                ]
            },
            Settings(),
        )

        (exporter,) = build_exporters(config)

        assert exporter.name == "mesh"
        assert exporter.client.url == "http://prom:9090"
        assert all(isinstance(spec, GatewayQuerySpec) for spec in exporter.query_specs)
        assert exporter.query_specs[0].namespaces == frozenset({"openfaas"})

    def test_exporter_without_queries(self):
        config = DiscoveryConfig.from_dict(
            {"exporters": [{"name": "empty", "sources": []}]}, Settings()
        )

        with pytest.raises(ConfigError, match="no queries"):
            build_exporters(config)

    def test_topology_config(self):
        config = DiscoveryConfig.from_dict(
            {"scope": "prod", "keep_standalone": True}, Settings()
        )

        topology = config.to_topology_config()

        assert topology.scope == "prod"
        assert topology.keep_standalone is True
        assert topology.capacities[CommodityKind.TRANSACTION] == 20.0

    def test_empty_gateway_allow_list_kept(self):
        """An explicitly empty allow-list admits no gateway namespace."""
        config = DiscoveryConfig.from_dict(
            {"exporters": [{"name": "gw", "sources": ["gateway"], "gateway_namespaces": []}]},
            Settings(),
        )

        (exporter,) = build_exporters(config)

        assert config.exporters[0].gateway_namespaces == []
        assert all(spec.namespaces == frozenset() for spec in exporter.query_specs)
