"""Tracing configuration, read once from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from craftlocal_tracing._exporter import (
    DEFAULT_SERVICE_NAME,
    ConsoleExporter,
    HTTPExporter,
    SpanExporter,
)
from craftlocal_tracing._grpc_exporter import OTLPGrpcExporter

ENV_PREFIX = "CRAFTLOCAL_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2``."""
    if not raw:
        return {}
    headers: dict[str, str] = {}
    for pair in raw.split(","):
        if not pair.strip():
            continue
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Malformed exporter header {pair!r}, expected key=value")
        headers[key.strip()] = value.strip()
    return headers


def _endpoint(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


@dataclass(frozen=True)
class TracingConfig:
    """Immutable tracing configuration."""

    service_name: str = DEFAULT_SERVICE_NAME
    console: bool = True
    otlp_endpoint: str | None = None
    jaeger_endpoint: str | None = None
    zipkin_endpoint: str | None = None
    otlp_grpc_endpoint: str | None = None
    exporter_headers: dict[str, str] = field(default_factory=dict)
    batch_size: int = 100
    flush_interval_ms: int = 5000
    max_buffer_size: int = 8192

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TracingConfig:
        """Build a config from ``CRAFTLOCAL_*`` variables.

        Raises ValueError for unparseable values.
        """
        env = os.environ if environ is None else environ
        p = ENV_PREFIX
        return cls(
            service_name=env.get(f"{p}SERVICE_NAME", "").strip() or DEFAULT_SERVICE_NAME,
            console=_parse_bool(env, f"{p}TRACE_CONSOLE", True),
            otlp_endpoint=_endpoint(env, f"{p}OTLP_ENDPOINT"),
            jaeger_endpoint=_endpoint(env, f"{p}JAEGER_ENDPOINT"),
            zipkin_endpoint=_endpoint(env, f"{p}ZIPKIN_ENDPOINT"),
            otlp_grpc_endpoint=_endpoint(env, f"{p}OTLP_GRPC_ENDPOINT"),
            exporter_headers=_parse_headers(env.get(f"{p}EXPORTER_HEADERS")),
            batch_size=_parse_int(env, f"{p}TRACE_BATCH_SIZE", 100),
            flush_interval_ms=_parse_int(env, f"{p}TRACE_FLUSH_INTERVAL_MS", 5000),
        )


def build_exporters(config: TracingConfig) -> list[SpanExporter]:
    """Console exporter (unless disabled) plus one exporter per endpoint."""
    exporters: list[SpanExporter] = []
    if config.console:
        exporters.append(ConsoleExporter())

    for fmt, endpoint in (
        ("jaeger", config.jaeger_endpoint),
        ("otlp", config.otlp_endpoint),
        ("zipkin", config.zipkin_endpoint),
    ):
        if endpoint:
            exporters.append(
                HTTPExporter(
                    endpoint,
                    format=fmt,
                    headers=config.exporter_headers,
                    service_name=config.service_name,
                )
            )

    if config.otlp_grpc_endpoint:
        exporters.append(
            OTLPGrpcExporter(config.otlp_grpc_endpoint, service_name=config.service_name)
        )
    return exporters
