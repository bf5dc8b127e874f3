"""Trace and span identifier generation."""

from __future__ import annotations

import secrets

TRACE_ID_BYTES = 16
SPAN_ID_BYTES = 8


def generate_id(length_bytes: int) -> str:
    """Return ``length_bytes`` random bytes as a lowercase hex string."""
    return secrets.token_hex(length_bytes)


def generate_trace_id() -> str:
    """32 hex chars, W3C trace-id sized."""
    return generate_id(TRACE_ID_BYTES)


def generate_span_id() -> str:
    """16 hex chars, W3C parent-id sized."""
    return generate_id(SPAN_ID_BYTES)
