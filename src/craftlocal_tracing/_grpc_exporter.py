"""OTLP gRPC exporter — converts SpanRecord batches to protobuf and ships them."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import grpc
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import (
    ExportTraceServiceRequest,
)
from opentelemetry.proto.collector.trace.v1.trace_service_pb2_grpc import (
    TraceServiceStub,
)
from opentelemetry.proto.common.v1.common_pb2 import (
    AnyValue,
    ArrayValue,
    InstrumentationScope,
    KeyValue,
)
from opentelemetry.proto.resource.v1.resource_pb2 import Resource
from opentelemetry.proto.trace.v1.trace_pb2 import (
    ResourceSpans,
    ScopeSpans,
)
from opentelemetry.proto.trace.v1.trace_pb2 import (
    Span as OtlpSpan,
)
from opentelemetry.proto.trace.v1.trace_pb2 import (
    Status as OtlpStatus,
)

from craftlocal_tracing._exporter import DEFAULT_SERVICE_NAME, ExportError
from craftlocal_tracing._formats import SCOPE_NAME, SCOPE_VERSION, ms_to_ns
from craftlocal_tracing._types import SpanKind, SpanStatus

if TYPE_CHECKING:
    from craftlocal_tracing._types import Attributes, SpanAttributeValue, SpanRecord

logger = logging.getLogger("craftlocal_tracing.exporter")

_KIND_MAP: dict[SpanKind, int] = {
    SpanKind.INTERNAL: OtlpSpan.SPAN_KIND_INTERNAL,
    SpanKind.SERVER: OtlpSpan.SPAN_KIND_SERVER,
    SpanKind.CLIENT: OtlpSpan.SPAN_KIND_CLIENT,
    SpanKind.PRODUCER: OtlpSpan.SPAN_KIND_PRODUCER,
    SpanKind.CONSUMER: OtlpSpan.SPAN_KIND_CONSUMER,
}

_STATUS_MAP: dict[SpanStatus, int] = {
    SpanStatus.UNSET: OtlpStatus.STATUS_CODE_UNSET,
    SpanStatus.OK: OtlpStatus.STATUS_CODE_OK,
    SpanStatus.ERROR: OtlpStatus.STATUS_CODE_ERROR,
}


def _any_value(value: SpanAttributeValue) -> AnyValue:
    if isinstance(value, bool):
        return AnyValue(bool_value=value)
    if isinstance(value, int):
        return AnyValue(int_value=value)
    if isinstance(value, float):
        return AnyValue(double_value=value)
    if isinstance(value, (list, tuple)):
        return AnyValue(array_value=ArrayValue(values=[_any_value(v) for v in value]))
    return AnyValue(string_value=str(value))


def _make_attribute(key: str, value: SpanAttributeValue) -> KeyValue:
    """Convert a Python key-value pair to an OTLP KeyValue protobuf."""
    return KeyValue(key=key, value=_any_value(value))


def _make_attributes(attributes: Attributes) -> list[KeyValue]:
    return [_make_attribute(k, v) for k, v in attributes.items()]


def _span_record_to_otlp(record: SpanRecord) -> OtlpSpan:
    """Convert a single SpanRecord to an OTLP Span protobuf."""
    status = OtlpStatus(code=_STATUS_MAP[record.status])  # type: ignore[arg-type]
    if record.status == SpanStatus.ERROR and record.status_message:
        status = OtlpStatus(code=_STATUS_MAP[record.status], message=record.status_message)  # type: ignore[arg-type]

    parent = bytes.fromhex(record.parent_span_id) if record.parent_span_id else b""
    end_time = record.end_time if record.end_time is not None else record.start_time

    return OtlpSpan(
        trace_id=bytes.fromhex(record.trace_id),
        span_id=bytes.fromhex(record.span_id),
        parent_span_id=parent,
        name=record.name,
        kind=_KIND_MAP.get(record.kind, OtlpSpan.SPAN_KIND_INTERNAL),  # type: ignore[arg-type]
        start_time_unix_nano=ms_to_ns(record.start_time),
        end_time_unix_nano=ms_to_ns(end_time),
        attributes=_make_attributes(record.attributes),
        events=[
            OtlpSpan.Event(
                time_unix_nano=ms_to_ns(event.timestamp),
                name=event.name,
                attributes=_make_attributes(event.attributes),
            )
            for event in record.events
        ],
        links=[
            OtlpSpan.Link(
                trace_id=bytes.fromhex(link.trace_id),
                span_id=bytes.fromhex(link.span_id),
                attributes=_make_attributes(link.attributes),
            )
            for link in record.links
        ],
        status=status,
    )


def _build_export_request(
    spans: Sequence[SpanRecord],
    service_name: str,
) -> ExportTraceServiceRequest:
    """Build an ExportTraceServiceRequest from a batch of SpanRecords."""
    resource_attrs = [
        _make_attribute("service.name", service_name),
        _make_attribute("telemetry.sdk.name", SCOPE_NAME),
        _make_attribute("telemetry.sdk.version", SCOPE_VERSION),
    ]

    resource = Resource(attributes=resource_attrs)
    scope = InstrumentationScope(name=SCOPE_NAME, version=SCOPE_VERSION)

    otlp_spans = [_span_record_to_otlp(record) for record in spans]

    scope_spans = ScopeSpans(scope=scope, spans=otlp_spans)
    resource_spans = ResourceSpans(resource=resource, scope_spans=[scope_spans])

    return ExportTraceServiceRequest(resource_spans=[resource_spans])


class OTLPGrpcExporter:
    """Exports span batches over gRPC using the OTLP trace protocol.

    The stub call blocks, so it runs in a worker thread to keep the event
    loop free. RPC failures raise :class:`ExportError` for the tracer to log.
    """

    name = "OTLPGrpcExporter"

    def __init__(
        self,
        endpoint: str,
        *,
        service_name: str = DEFAULT_SERVICE_NAME,
        insecure: bool = True,
        timeout_s: float = 10.0,
        api_key: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._service_name = service_name
        self._timeout_s = timeout_s
        self._metadata: list[tuple[str, str]] | None = None
        if api_key is not None:
            self._metadata = [("authorization", f"Bearer {api_key}")]

        if insecure:
            self._channel = grpc.insecure_channel(endpoint)
        else:
            self._channel = grpc.secure_channel(endpoint, grpc.ssl_channel_credentials())

        self._stub = TraceServiceStub(self._channel)  # type: ignore[no-untyped-call]

    async def export(self, spans: Sequence[SpanRecord]) -> None:
        if not spans:
            return
        try:
            request = _build_export_request(spans, self._service_name)
        except ValueError as exc:
            raise ExportError("Failed to encode spans", exporter=self.name) from exc

        try:
            await asyncio.to_thread(
                self._stub.Export,
                request,
                timeout=self._timeout_s,
                metadata=self._metadata,
            )
        except grpc.RpcError as exc:
            raise ExportError(f"Export to {self.endpoint} failed", exporter=self.name) from exc
        logger.debug("Exported %d spans to %s", len(spans), self.endpoint)

    async def shutdown(self) -> None:
        """Close the gRPC channel."""
        try:
            self._channel.close()
        except Exception:  # noqa: BLE001
            logger.debug("Failed to close gRPC channel", exc_info=True)
