"""Shared fixtures and helpers."""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping, Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import pytest

from craftlocal_tracing._context import _current_span
from craftlocal_tracing._types import SpanKind, SpanRecord, SpanStatus


@pytest.fixture(autouse=True)
def _no_active_span() -> Iterator[None]:
    """Every test starts without an active span."""
    token = _current_span.set(None)
    yield
    _current_span.reset(token)


class CollectingExporter:
    """In-memory exporter that keeps every batch it receives."""

    def __init__(self, name: str = "CollectingExporter") -> None:
        self.name = name
        self.batches: list[list[SpanRecord]] = []
        self.shutdown_called = False

    async def export(self, spans: Sequence[SpanRecord]) -> None:
        self.batches.append(list(spans))

    async def shutdown(self) -> None:
        self.shutdown_called = True

    @property
    def spans(self) -> list[SpanRecord]:
        return [s for batch in self.batches for s in batch]


@pytest.fixture
def collector() -> CollectingExporter:
    return CollectingExporter()


class _CollectorHandler(BaseHTTPRequestHandler):
    """Accepts POSTs over keep-alive connections and stores the bodies."""

    protocol_version = "HTTP/1.1"

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length)
        with self.server.lock:  # type: ignore[attr-defined]
            self.server.bodies.append(body)  # type: ignore[attr-defined]
        self.send_response(202)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        pass


@pytest.fixture
def collector_server() -> Iterator[ThreadingHTTPServer]:
    """Real HTTP collector on localhost; ``server.url`` is its endpoint."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _CollectorHandler)
    server.daemon_threads = True
    server.bodies = []  # type: ignore[attr-defined]
    server.lock = threading.Lock()  # type: ignore[attr-defined]
    server.url = f"http://127.0.0.1:{server.server_address[1]}/api/v2/spans"  # type: ignore[attr-defined]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


class ErrorLog:
    """Error sink that records every reported export failure."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, BaseException, dict[str, Any]]] = []

    def __call__(self, message: str, error: BaseException, context: Mapping[str, Any]) -> None:
        self.calls.append((message, error, dict(context)))


def make_record(**overrides: Any) -> SpanRecord:
    """Create a finished SpanRecord with sensible defaults."""
    defaults: dict[str, Any] = {
        "name": "test-span",
        "kind": SpanKind.INTERNAL,
        "trace_id": "0123456789abcdef0123456789abcdef",
        "span_id": "abcdef0123456789",
        "parent_span_id": None,
        "start_time": 1_000.0,
        "end_time": 2_000.0,
        "status": SpanStatus.OK,
        "attributes": {},
    }
    defaults.update(overrides)
    return SpanRecord(**defaults)
