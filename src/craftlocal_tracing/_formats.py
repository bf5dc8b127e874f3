"""JSON wire formats for collector payloads: OTLP-like, Zipkin v2 and Jaeger.

Span times are held in epoch milliseconds. OTLP wants integer nanoseconds;
Zipkin and Jaeger want integer microseconds.
"""

from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from craftlocal_tracing._types import (
    SpanAttributeValue,
    SpanKind,
    SpanRecord,
    SpanStatus,
)

Formatter = Callable[[Sequence[SpanRecord], str], Any]

SCOPE_NAME = "craftlocal_tracing"
SCOPE_VERSION = "0.1.0"

OTLP_KIND_CODES: dict[SpanKind, int] = {
    SpanKind.INTERNAL: 1,
    SpanKind.SERVER: 2,
    SpanKind.CLIENT: 3,
    SpanKind.PRODUCER: 4,
    SpanKind.CONSUMER: 5,
}

OTLP_STATUS_CODES: dict[SpanStatus, int] = {
    SpanStatus.UNSET: 0,
    SpanStatus.OK: 1,
    SpanStatus.ERROR: 2,
}


def ms_to_ns(ms: float) -> int:
    return int(round(ms * 1_000_000))


def ms_to_us(ms: float) -> int:
    return int(round(ms * 1000))


def _end_time(span: SpanRecord) -> float:
    return span.end_time if span.end_time is not None else span.start_time


# -- OTLP-like --------------------------------------------------------------


def otlp_any_value(value: SpanAttributeValue) -> dict[str, Any]:
    """Typed OTLP value. bool is checked first since it subclasses int."""
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": value}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [otlp_any_value(v) for v in value]}}
    return {"stringValue": str(value)}


def otlp_attributes(attributes: Mapping[str, SpanAttributeValue]) -> list[dict[str, Any]]:
    return [{"key": k, "value": otlp_any_value(v)} for k, v in attributes.items()]


def _otlp_span(span: SpanRecord) -> dict[str, Any]:
    status: dict[str, Any] = {"code": OTLP_STATUS_CODES[span.status]}
    if span.status == SpanStatus.ERROR and span.status_message:
        status["message"] = span.status_message

    out: dict[str, Any] = {
        "traceId": span.trace_id,
        "spanId": span.span_id,
        "name": span.name,
        "kind": OTLP_KIND_CODES[span.kind],
        "startTimeUnixNano": ms_to_ns(span.start_time),
        "endTimeUnixNano": ms_to_ns(_end_time(span)),
        "attributes": otlp_attributes(span.attributes),
        "events": [
            {
                "name": event.name,
                "timeUnixNano": ms_to_ns(event.timestamp),
                "attributes": otlp_attributes(event.attributes),
            }
            for event in span.events
        ],
        "links": [
            {
                "traceId": link.trace_id,
                "spanId": link.span_id,
                "attributes": otlp_attributes(link.attributes),
            }
            for link in span.links
        ],
        "status": status,
    }
    if span.parent_span_id:
        out["parentSpanId"] = span.parent_span_id
    return out


def to_otlp(spans: Sequence[SpanRecord], service_name: str) -> dict[str, Any]:
    """resource -> scope -> spans, as accepted by an OTLP/HTTP JSON collector."""
    resource_attrs = otlp_attributes(
        {
            "service.name": service_name,
            "telemetry.sdk.name": SCOPE_NAME,
            "telemetry.sdk.version": SCOPE_VERSION,
        }
    )
    return {
        "resourceSpans": [
            {
                "resource": {"attributes": resource_attrs},
                "scopeSpans": [
                    {
                        "scope": {"name": SCOPE_NAME, "version": SCOPE_VERSION},
                        "spans": [_otlp_span(s) for s in spans],
                    }
                ],
            }
        ]
    }


# -- Zipkin v2 --------------------------------------------------------------


def _zipkin_span(span: SpanRecord, service_name: str) -> dict[str, Any]:
    tags: dict[str, Any] = dict(span.attributes)
    if span.status == SpanStatus.ERROR:
        tags.setdefault("error", span.status_message or "true")

    out: dict[str, Any] = {
        "traceId": span.trace_id,
        "id": span.span_id,
        "name": span.name,
        "timestamp": ms_to_us(span.start_time),
        "duration": ms_to_us(_end_time(span) - span.start_time),
        "localEndpoint": {"serviceName": service_name},
        "tags": tags,
    }
    if span.parent_span_id:
        out["parentId"] = span.parent_span_id
    # Zipkin has no INTERNAL kind; local spans simply omit it
    if span.kind != SpanKind.INTERNAL:
        out["kind"] = span.kind.name
    if span.events:
        out["annotations"] = [
            {"timestamp": ms_to_us(e.timestamp), "value": e.name} for e in span.events
        ]
    return out


def to_zipkin(spans: Sequence[SpanRecord], service_name: str) -> list[dict[str, Any]]:
    """Flat span list for ``POST /api/v2/spans``."""
    return [_zipkin_span(s, service_name) for s in spans]


# -- Jaeger -----------------------------------------------------------------

_JAEGER_PROCESS_ID = "p1"


def jaeger_tag(key: str, value: SpanAttributeValue) -> dict[str, Any]:
    """Jaeger tag typed by the value's runtime type."""
    if isinstance(value, bool):
        return {"key": key, "type": "bool", "value": value}
    if isinstance(value, int):
        return {"key": key, "type": "int64", "value": value}
    if isinstance(value, float):
        return {"key": key, "type": "float64", "value": value}
    if isinstance(value, (list, tuple)):
        return {"key": key, "type": "string", "value": json.dumps(list(value))}
    return {"key": key, "type": "string", "value": str(value)}


def _jaeger_span(span: SpanRecord) -> dict[str, Any]:
    tags = [jaeger_tag(k, v) for k, v in span.attributes.items()]
    if span.kind != SpanKind.INTERNAL:
        tags.append(jaeger_tag("span.kind", span.kind.value))
    if span.status == SpanStatus.ERROR:
        tags.append(jaeger_tag("error", True))

    references = []
    if span.parent_span_id:
        references.append(
            {"refType": "CHILD_OF", "traceID": span.trace_id, "spanID": span.parent_span_id}
        )
    references.extend(
        {"refType": "FOLLOWS_FROM", "traceID": link.trace_id, "spanID": link.span_id}
        for link in span.links
    )

    return {
        "traceID": span.trace_id,
        "spanID": span.span_id,
        "operationName": span.name,
        "references": references,
        "startTime": ms_to_us(span.start_time),
        "duration": ms_to_us(_end_time(span) - span.start_time),
        "tags": tags,
        "logs": [
            {
                "timestamp": ms_to_us(event.timestamp),
                "fields": [jaeger_tag("event", event.name)]
                + [jaeger_tag(k, v) for k, v in event.attributes.items()],
            }
            for event in span.events
        ],
        "processID": _JAEGER_PROCESS_ID,
    }


def to_jaeger(spans: Sequence[SpanRecord], service_name: str) -> dict[str, Any]:
    """One trace envelope per trace id, spans in batch order."""
    by_trace: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for span in spans:
        by_trace[span.trace_id].append(_jaeger_span(span))

    process = {"serviceName": service_name, "tags": []}
    return {
        "data": [
            {
                "traceID": trace_id,
                "spans": trace_spans,
                "processes": {_JAEGER_PROCESS_ID: process},
            }
            for trace_id, trace_spans in by_trace.items()
        ]
    }


FORMATTERS: dict[str, Formatter] = {
    "otlp": to_otlp,
    "zipkin": to_zipkin,
    "jaeger": to_jaeger,
}


def get_formatter(name: str) -> Formatter:
    """Return the payload builder for a wire format name."""
    try:
        return FORMATTERS[name.lower()]
    except KeyError:
        supported = ", ".join(sorted(FORMATTERS))
        raise ValueError(f"Unknown trace format {name!r} (supported: {supported})") from None
