"""Tests for _types module."""

import dataclasses

import pytest

from craftlocal_tracing._types import (
    SpanEvent,
    SpanKind,
    SpanLink,
    SpanRecord,
    SpanStatus,
    TraceContext,
)


def test_span_kind_members() -> None:
    assert [k.name for k in SpanKind] == [
        "INTERNAL",
        "SERVER",
        "CLIENT",
        "PRODUCER",
        "CONSUMER",
    ]


def test_span_status_members() -> None:
    assert {s.name for s in SpanStatus} == {"UNSET", "OK", "ERROR"}


def test_span_record_is_frozen() -> None:
    record = SpanRecord(
        name="x",
        kind=SpanKind.INTERNAL,
        trace_id="a" * 32,
        span_id="b" * 16,
        start_time=10.0,
        end_time=12.5,
        status=SpanStatus.OK,
    )
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.name = "y"  # type: ignore[misc]


def test_span_record_defaults() -> None:
    record = SpanRecord(
        name="x",
        kind=SpanKind.CLIENT,
        trace_id="a" * 32,
        span_id="b" * 16,
        start_time=10.0,
        status=SpanStatus.UNSET,
    )
    assert record.parent_span_id is None
    assert record.end_time is None
    assert record.attributes == {}
    assert record.events == []
    assert record.links == []
    assert record.status_message is None


def test_duration_ms() -> None:
    record = SpanRecord(
        name="x",
        kind=SpanKind.INTERNAL,
        trace_id="a" * 32,
        span_id="b" * 16,
        start_time=100.0,
        end_time=150.0,
        status=SpanStatus.OK,
    )
    assert record.duration_ms == 50.0


def test_duration_ms_unended() -> None:
    record = SpanRecord(
        name="x",
        kind=SpanKind.INTERNAL,
        trace_id="a" * 32,
        span_id="b" * 16,
        start_time=100.0,
        status=SpanStatus.UNSET,
    )
    assert record.duration_ms == 0.0


def test_event_and_link_defaults() -> None:
    assert SpanEvent(name="e", timestamp=1.0).attributes == {}
    assert SpanLink(trace_id="a" * 32, span_id="b" * 16).attributes == {}


def test_trace_context_defaults() -> None:
    ctx = TraceContext(trace_id="a" * 32, span_id="b" * 16)
    assert ctx.trace_flags == 1
    assert ctx.parent_span_id is None
    assert ctx.trace_state is None
