"""Span class — the core unit of tracing."""

from __future__ import annotations

import time
import traceback
from collections.abc import Mapping
from contextvars import Token
from types import TracebackType
from typing import Protocol

from craftlocal_tracing._context import restore_current_span, set_current_span
from craftlocal_tracing._ids import generate_span_id, generate_trace_id
from craftlocal_tracing._types import (
    Attributes,
    SpanAttributeValue,
    SpanEvent,
    SpanKind,
    SpanLink,
    SpanRecord,
    SpanStatus,
    TraceContext,
)


# Monotonic clock anchored to wall time once, so timestamps are epoch based
# yet never run backwards within the process.
_EPOCH_OFFSET_NS = time.time_ns() - time.perf_counter_ns()


def now_ms() -> float:
    """Milliseconds since the Unix epoch from the monotonic span clock."""
    return (_EPOCH_OFFSET_NS + time.perf_counter_ns()) / 1_000_000


class SpanSink(Protocol):
    """Receiver of finished span records (normally a Tracer)."""

    def record_span(self, record: SpanRecord) -> None: ...


def _copy_value(value: SpanAttributeValue) -> SpanAttributeValue:
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def _copy_attributes(attributes: Mapping[str, SpanAttributeValue] | None) -> Attributes:
    if not attributes:
        return {}
    return {k: _copy_value(v) for k, v in attributes.items()}


class Span:
    """A mutable span that becomes an immutable SpanRecord on ``end()``.

    Mutators return the span so calls can be chained. Once ended, a span
    ignores further mutation and a second ``end()`` is a no-op.

    Also usable as a context manager::

        with tracer.start_span("load-cart") as s:
            s.set_attribute("cart.items", 3)
    """

    def __init__(
        self,
        name: str,
        *,
        sink: SpanSink | None,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, SpanAttributeValue] | None = None,
        parent: Span | TraceContext | None = None,
    ) -> None:
        self.name = name
        self.kind = kind
        self._sink = sink

        self.span_id: str = generate_span_id()
        self._status: SpanStatus = SpanStatus.UNSET
        self._status_message: str | None = None
        self._attributes: Attributes = _copy_attributes(attributes)
        self._events: list[SpanEvent] = []
        self._links: list[SpanLink] = []

        # Parent/trace resolution; flags and tracestate follow the trace
        self._parent: Span | None = parent if isinstance(parent, Span) else None
        self._trace_flags = 1
        self._trace_state: str | None = None
        if parent is not None:
            self.trace_id: str = parent.trace_id
            self.parent_span_id: str | None = parent.span_id
            upstream = parent.get_trace_context() if isinstance(parent, Span) else parent
            self._trace_flags = upstream.trace_flags
            self._trace_state = upstream.trace_state
        else:
            self.trace_id = generate_trace_id()
            self.parent_span_id = None

        self._start_time: float = now_ms()
        self._end_time: float | None = None
        self._token: Token[Span | None] | None = None

    @property
    def status(self) -> SpanStatus:
        return self._status

    @property
    def is_ended(self) -> bool:
        return self._end_time is not None

    def activate(self) -> None:
        """Make this span the active span of the current context."""
        if self._token is None and not self.is_ended:
            self._token = set_current_span(self)

    def set_attribute(self, key: str, value: SpanAttributeValue) -> Span:
        """Attach a key-value attribute to this span."""
        if not self.is_ended:
            self._attributes[key] = _copy_value(value)
        return self

    def set_attributes(self, attributes: Mapping[str, SpanAttributeValue]) -> Span:
        if not self.is_ended:
            self._attributes.update(_copy_attributes(attributes))
        return self

    def add_event(
        self,
        name: str,
        attributes: Mapping[str, SpanAttributeValue] | None = None,
    ) -> Span:
        """Append a timestamped event."""
        if not self.is_ended:
            self._events.append(
                SpanEvent(name=name, timestamp=now_ms(), attributes=_copy_attributes(attributes))
            )
        return self

    def add_link(
        self,
        trace_id: str,
        span_id: str,
        attributes: Mapping[str, SpanAttributeValue] | None = None,
    ) -> Span:
        """Reference a related span. Links never affect parenting."""
        if not self.is_ended:
            self._links.append(
                SpanLink(trace_id=trace_id, span_id=span_id, attributes=_copy_attributes(attributes))
            )
        return self

    def record_exception(self, exc: BaseException) -> Span:
        """Mark the span ERROR and attach an ``exception`` event.

        Equivalent to ``set_status(ERROR)`` followed by ``add_event``, so a
        later ``set_status`` call still overrides the status.
        """
        if self.is_ended:
            return self
        self.set_status(SpanStatus.ERROR, str(exc) or type(exc).__name__)
        stacktrace = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        return self.add_event(
            "exception",
            {
                "exception.type": type(exc).__name__,
                "exception.message": str(exc),
                "exception.stacktrace": stacktrace,
            },
        )

    def set_status(self, status: SpanStatus, message: str | None = None) -> Span:
        """Explicitly set span status. The last call wins."""
        if not self.is_ended:
            self._status = status
            self._status_message = message
        return self

    def end(self) -> None:
        """Finish the span and hand its record to the sink.

        Calling ``end()`` on an ended span does nothing.
        """
        if self.is_ended:
            return
        self._end_time = now_ms()
        if self._status == SpanStatus.UNSET:
            self._status = SpanStatus.OK

        if self._token is not None:
            restore_current_span(self._token, self, self._parent)
            self._token = None

        if self._sink is not None:
            self._sink.record_span(self.get_context())

    def get_context(self) -> SpanRecord:
        """Return a detached snapshot of the span's current state."""
        return SpanRecord(
            name=self.name,
            kind=self.kind,
            trace_id=self.trace_id,
            span_id=self.span_id,
            parent_span_id=self.parent_span_id,
            start_time=self._start_time,
            end_time=self._end_time,
            status=self._status,
            status_message=self._status_message,
            attributes=_copy_attributes(self._attributes),
            events=list(self._events),
            links=list(self._links),
        )

    def get_trace_context(self) -> TraceContext:
        """Return the propagation-sized view of this span's identity.

        Locally rooted traces are sampled (flags ``01``); a span continuing a
        remote context keeps its flags and ``tracestate``.
        """
        return TraceContext(
            trace_id=self.trace_id,
            span_id=self.span_id,
            parent_span_id=self.parent_span_id,
            trace_flags=self._trace_flags,
            trace_state=self._trace_state,
        )

    def __enter__(self) -> Span:
        self.activate()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is not None:
            self.record_exception(exc_val)
        self.end()

    def __repr__(self) -> str:
        return (
            f"Span(name={self.name!r}, trace_id={self.trace_id}, "
            f"span_id={self.span_id}, status={self._status.name})"
        )
