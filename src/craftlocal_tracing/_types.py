"""Core types: enums, span records and the propagation context."""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field

AttributeScalar = str | int | float | bool
SpanAttributeValue = AttributeScalar | Sequence[AttributeScalar]
Attributes = dict[str, SpanAttributeValue]


class SpanKind(enum.Enum):
    """Role of a span in a distributed call graph."""

    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"
    PRODUCER = "producer"
    CONSUMER = "consumer"


class SpanStatus(enum.Enum):
    """Status of a span. ``UNSET`` becomes ``OK`` when the span ends."""

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class SpanEvent:
    """Point-in-time annotation inside a span's lifetime."""

    name: str
    timestamp: float
    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True)
class SpanLink:
    """Reference to a causally related span, possibly in another trace."""

    trace_id: str
    span_id: str
    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True)
class SpanRecord:
    """Immutable snapshot of a span, as buffered and exported.

    ``start_time`` and ``end_time`` are milliseconds since the Unix epoch.
    ``end_time`` is ``None`` only for snapshots of spans still in flight.
    """

    name: str
    kind: SpanKind
    trace_id: str
    span_id: str
    start_time: float
    status: SpanStatus
    parent_span_id: str | None = None
    end_time: float | None = None
    attributes: Attributes = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    links: list[SpanLink] = field(default_factory=list)
    status_message: str | None = None

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return self.end_time - self.start_time


@dataclass(frozen=True)
class TraceContext:
    """Wire-transmissible subset of a span's identity."""

    trace_id: str
    span_id: str
    trace_flags: int = 1
    parent_span_id: str | None = None
    trace_state: str | None = None
