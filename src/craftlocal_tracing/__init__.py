"""craftlocal_tracing: distributed tracing for the CraftLocal storefront."""

from __future__ import annotations

from collections.abc import Mapping

from craftlocal_tracing._config import TracingConfig, build_exporters
from craftlocal_tracing._exporter import (
    ConsoleExporter,
    ExportError,
    HTTPExporter,
    SpanExporter,
)
from craftlocal_tracing._grpc_exporter import OTLPGrpcExporter
from craftlocal_tracing._ids import generate_id, generate_span_id, generate_trace_id
from craftlocal_tracing._propagation import (
    TraceContextPropagator,
    extract,
    inject,
    trace_context_propagator,
)
from craftlocal_tracing._sdk import get_tracer, init, shutdown
from craftlocal_tracing._span import Span
from craftlocal_tracing._trace import trace
from craftlocal_tracing._tracer import Tracer
from craftlocal_tracing._types import (
    SpanAttributeValue,
    SpanEvent,
    SpanKind,
    SpanLink,
    SpanRecord,
    SpanStatus,
    TraceContext,
)

__version__ = "0.1.0"

__all__ = [
    "ConsoleExporter",
    "ExportError",
    "HTTPExporter",
    "OTLPGrpcExporter",
    "Span",
    "SpanEvent",
    "SpanExporter",
    "SpanKind",
    "SpanLink",
    "SpanRecord",
    "SpanStatus",
    "TraceContext",
    "TraceContextPropagator",
    "Tracer",
    "TracingConfig",
    "__version__",
    "build_exporters",
    "extract",
    "generate_id",
    "generate_span_id",
    "generate_trace_id",
    "get_tracer",
    "init",
    "inject",
    "shutdown",
    "span",
    "trace",
    "trace_context_propagator",
]


def span(
    name: str,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Mapping[str, SpanAttributeValue] | None = None,
) -> Span:
    """Start a span on the default tracer; usable as a context manager.

    Usage::

        with craftlocal_tracing.span("cart.recalculate") as s:
            s.set_attribute("cart.items", 3)
    """
    return get_tracer().start_span(name, kind=kind, attributes=attributes)
