"""Span exporters — console output and JSON over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Mapping, Sequence
from typing import IO, Protocol, runtime_checkable

import httpx

from craftlocal_tracing._formats import get_formatter
from craftlocal_tracing._types import SpanRecord

logger = logging.getLogger("craftlocal_tracing.exporter")

DEFAULT_SERVICE_NAME = "craftlocal-web"


class ExportError(Exception):
    """An exporter failed to deliver a batch. The batch is not retried."""

    def __init__(self, message: str, *, exporter: str) -> None:
        super().__init__(f"{exporter}: {message}")
        self.exporter = exporter


@runtime_checkable
class SpanExporter(Protocol):
    """Sink for batches of finished spans."""

    def export(self, spans: Sequence[SpanRecord]) -> Awaitable[None] | None: ...

    def shutdown(self) -> Awaitable[None] | None: ...


def exporter_name(exporter: object) -> str:
    """Identity used when logging exporter failures."""
    name = getattr(exporter, "name", None)
    if isinstance(name, str):
        return name
    return type(exporter).__name__


def _dump(value: object) -> str:
    return json.dumps(value, default=str, sort_keys=True)


class ConsoleExporter:
    """Writes a grouped, human-readable summary of each span to a stream."""

    name = "ConsoleExporter"

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream

    async def export(self, spans: Sequence[SpanRecord]) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        try:
            for span in spans:
                stream.write(self._format(span))
            stream.flush()
        except (OSError, TypeError, ValueError) as exc:
            raise ExportError("Failed to write spans", exporter=self.name) from exc

    @staticmethod
    def _format(span: SpanRecord) -> str:
        lines = [
            f"[TRACE] {span.name} ({span.duration_ms:.2f}ms) [{span.status.name}]",
            f"  Trace ID: {span.trace_id}",
            f"  Span ID: {span.span_id}",
        ]
        if span.parent_span_id:
            lines.append(f"  Parent Span ID: {span.parent_span_id}")
        lines.append(f"  Kind: {span.kind.name}")
        if span.status_message:
            lines.append(f"  Status message: {span.status_message}")
        lines.append(f"  Attributes: {_dump(span.attributes)}")
        if span.events:
            lines.append("  Events:")
            for event in span.events:
                offset = event.timestamp - span.start_time
                lines.append(f"    - {event.name} (+{offset:.2f}ms) {_dump(event.attributes)}")
        if span.links:
            lines.append("  Links:")
            for link in span.links:
                lines.append(f"    - {link.trace_id}/{link.span_id}")
        return "\n".join(lines) + "\n"

    async def shutdown(self) -> None:
        """Nothing to release."""


class HTTPExporter:
    """POSTs span batches as JSON to a remote collector.

    The payload shape is picked by ``format`` (``otlp``, ``zipkin`` or
    ``jaeger``); transport, headers and error handling are shared.
    Network errors and non-2xx responses raise :class:`ExportError`.

    An owned client is bound to the event loop that created it. Flushes run
    through ``asyncio.run`` (no loop at hand, or the exit hook) get a fresh
    client instead of reusing pooled connections from a closed loop.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        format: str = "otlp",  # noqa: A002
        headers: Mapping[str, str] | None = None,
        service_name: str = DEFAULT_SERVICE_NAME,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._formatter = get_formatter(format)
        self.format = format
        self.endpoint = endpoint
        self.name = f"HTTPExporter[{format}]"
        self._service_name = service_name
        self._timeout_s = timeout_s
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._client = client
        self._client_loop: asyncio.AbstractEventLoop | None = None
        self._owns_client = client is None
        self._closed = False

    def _get_client(self) -> httpx.AsyncClient:
        if not self._owns_client and self._client is not None:
            return self._client

        loop = asyncio.get_running_loop()
        if self._client is not None and self._client_loop is not loop:
            # Its connections belong to another (usually closed) loop
            logger.debug("Event loop changed, replacing HTTP client for %s", self.endpoint)
            self._client = None
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
            self._client_loop = loop
        return self._client

    async def export(self, spans: Sequence[SpanRecord]) -> None:
        if not spans:
            return
        if self._closed:
            raise ExportError("exporter is shut down", exporter=self.name)

        try:
            body = json.dumps(self._formatter(spans, self._service_name), allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise ExportError("Failed to serialize spans", exporter=self.name) from exc

        try:
            response = await self._get_client().post(
                self.endpoint,
                content=body,
                headers=self._headers,
                timeout=self._timeout_s,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExportError(
                f"Collector returned HTTP {exc.response.status_code}", exporter=self.name
            ) from exc
        except (httpx.HTTPError, OSError, RuntimeError) as exc:
            raise ExportError(f"Request to {self.endpoint} failed", exporter=self.name) from exc

        logger.debug("Exported %d spans to %s", len(spans), self.endpoint)

    async def shutdown(self) -> None:
        """Close the owned HTTP client. Safe to call twice."""
        self._closed = True
        client, self._client = self._client, None
        client_loop, self._client_loop = self._client_loop, None
        if client is None or not self._owns_client:
            return
        if client_loop is not asyncio.get_running_loop():
            logger.debug("Dropping HTTP client created on another event loop")
            return
        await client.aclose()
