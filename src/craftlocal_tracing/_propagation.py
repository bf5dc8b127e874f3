"""W3C Trace Context propagation (``traceparent`` / ``tracestate``)."""

from __future__ import annotations

import re
from collections.abc import Mapping, MutableMapping

from craftlocal_tracing._types import TraceContext

TRACEPARENT_HEADER = "traceparent"
TRACESTATE_HEADER = "tracestate"

_VERSION = "00"
_HEX = re.compile(r"[0-9a-f]+")


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    # Plain dicts are case-sensitive; HTTP header names are not
    for key, candidate in headers.items():
        if key.lower() == name:
            return candidate
    return None


def _is_hex(value: str, length: int) -> bool:
    return len(value) == length and bool(_HEX.fullmatch(value)) and value.strip("0") != ""


class TraceContextPropagator:
    """Reads and writes the ``traceparent``/``tracestate`` header pair.

    ``traceparent`` has the layout ``00-{trace_id}-{span_id}-{flags}`` with
    flags as two hex digits.
    """

    fields = (TRACEPARENT_HEADER, TRACESTATE_HEADER)

    def inject(self, context: TraceContext, headers: MutableMapping[str, str]) -> None:
        """Write ``context`` into ``headers``."""
        flags = context.trace_flags & 0xFF
        headers[TRACEPARENT_HEADER] = f"{_VERSION}-{context.trace_id}-{context.span_id}-{flags:02x}"
        if context.trace_state:
            headers[TRACESTATE_HEADER] = context.trace_state

    def extract(self, headers: Mapping[str, str]) -> TraceContext | None:
        """Parse the incoming context, or return None if absent or malformed.

        None means "start a new root trace"; malformed headers are never an
        error.
        """
        traceparent = _get_header(headers, TRACEPARENT_HEADER)
        if not traceparent:
            return None

        parts = traceparent.strip().split("-")
        if len(parts) != 4:
            return None
        version, trace_id, span_id, flags = parts
        if len(version) != 2 or not _HEX.fullmatch(version) or version == "ff":
            return None
        if not _is_hex(trace_id, 32) or not _is_hex(span_id, 16):
            return None
        if len(flags) != 2 or not _HEX.fullmatch(flags):
            return None

        return TraceContext(
            trace_id=trace_id,
            span_id=span_id,
            trace_flags=int(flags, 16),
            trace_state=_get_header(headers, TRACESTATE_HEADER) or None,
        )


trace_context_propagator = TraceContextPropagator()


def inject(context: TraceContext, headers: MutableMapping[str, str]) -> None:
    trace_context_propagator.inject(context, headers)


def extract(headers: Mapping[str, str]) -> TraceContext | None:
    return trace_context_propagator.extract(headers)
