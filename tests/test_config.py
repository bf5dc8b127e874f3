"""Tests for _config module."""

import dataclasses

import pytest

from craftlocal_tracing._config import TracingConfig, build_exporters
from craftlocal_tracing._exporter import ConsoleExporter, HTTPExporter
from craftlocal_tracing._grpc_exporter import OTLPGrpcExporter


def test_config_defaults() -> None:
    cfg = TracingConfig()
    assert cfg.service_name == "craftlocal-web"
    assert cfg.console is True
    assert cfg.otlp_endpoint is None
    assert cfg.batch_size == 100
    assert cfg.flush_interval_ms == 5000
    assert cfg.max_buffer_size == 8192
    assert cfg.exporter_headers == {}


def test_config_is_frozen() -> None:
    cfg = TracingConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.batch_size = 5  # type: ignore[misc]


def test_from_env_empty() -> None:
    assert TracingConfig.from_env({}) == TracingConfig()


def test_from_env_reads_variables() -> None:
    cfg = TracingConfig.from_env(
        {
            "CRAFTLOCAL_SERVICE_NAME": "storefront",
            "CRAFTLOCAL_OTLP_ENDPOINT": "http://otel:4318/v1/traces",
            "CRAFTLOCAL_JAEGER_ENDPOINT": "http://jaeger:14268/api/traces",
            "CRAFTLOCAL_ZIPKIN_ENDPOINT": "http://zipkin:9411/api/v2/spans",
            "CRAFTLOCAL_OTLP_GRPC_ENDPOINT": "otel:4317",
            "CRAFTLOCAL_EXPORTER_HEADERS": "Authorization=Bearer abc, X-Tenant=shop",
            "CRAFTLOCAL_TRACE_BATCH_SIZE": "10",
            "CRAFTLOCAL_TRACE_FLUSH_INTERVAL_MS": "250",
            "CRAFTLOCAL_TRACE_CONSOLE": "false",
        }
    )
    assert cfg.service_name == "storefront"
    assert cfg.otlp_endpoint == "http://otel:4318/v1/traces"
    assert cfg.jaeger_endpoint == "http://jaeger:14268/api/traces"
    assert cfg.zipkin_endpoint == "http://zipkin:9411/api/v2/spans"
    assert cfg.otlp_grpc_endpoint == "otel:4317"
    assert cfg.exporter_headers == {"Authorization": "Bearer abc", "X-Tenant": "shop"}
    assert cfg.batch_size == 10
    assert cfg.flush_interval_ms == 250
    assert cfg.console is False


def test_from_env_reads_os_environ(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CRAFTLOCAL_SERVICE_NAME", "from-os")
    assert TracingConfig.from_env().service_name == "from-os"


def test_blank_values_fall_back_to_defaults() -> None:
    cfg = TracingConfig.from_env(
        {"CRAFTLOCAL_SERVICE_NAME": "  ", "CRAFTLOCAL_OTLP_ENDPOINT": "", "CRAFTLOCAL_TRACE_BATCH_SIZE": ""}
    )
    assert cfg == TracingConfig()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CRAFTLOCAL_TRACE_BATCH_SIZE", "ten"),
        ("CRAFTLOCAL_TRACE_BATCH_SIZE", "0"),
        ("CRAFTLOCAL_TRACE_FLUSH_INTERVAL_MS", "-5"),
        ("CRAFTLOCAL_TRACE_CONSOLE", "maybe"),
        ("CRAFTLOCAL_EXPORTER_HEADERS", "no-equals-sign"),
    ],
)
def test_invalid_values_raise(name: str, value: str) -> None:
    with pytest.raises(ValueError):
        TracingConfig.from_env({name: value})


def test_build_exporters_default_is_console_only() -> None:
    exporters = build_exporters(TracingConfig())
    assert len(exporters) == 1
    assert isinstance(exporters[0], ConsoleExporter)


def test_build_exporters_per_endpoint() -> None:
    cfg = TracingConfig(
        service_name="storefront",
        console=False,
        otlp_endpoint="http://otel:4318/v1/traces",
        jaeger_endpoint="http://jaeger:14268/api/traces",
        zipkin_endpoint="http://zipkin:9411/api/v2/spans",
        otlp_grpc_endpoint="localhost:4317",
        exporter_headers={"X-Tenant": "shop"},
    )
    exporters = build_exporters(cfg)

    http = [e for e in exporters if isinstance(e, HTTPExporter)]
    assert [e.format for e in http] == ["jaeger", "otlp", "zipkin"]
    assert http[1].endpoint == "http://otel:4318/v1/traces"
    assert http[0]._headers["X-Tenant"] == "shop"
    assert http[0]._service_name == "storefront"
    assert isinstance(exporters[-1], OTLPGrpcExporter)
    assert not any(isinstance(e, ConsoleExporter) for e in exporters)
