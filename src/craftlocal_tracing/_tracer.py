"""Tracer — span creation, buffering and batched export."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from craftlocal_tracing._buffer import SpanBuffer
from craftlocal_tracing._context import get_current_span
from craftlocal_tracing._exporter import (
    DEFAULT_SERVICE_NAME,
    ConsoleExporter,
    SpanExporter,
    exporter_name,
)
from craftlocal_tracing._processor import BackgroundProcessor, run_soon
from craftlocal_tracing._span import Span
from craftlocal_tracing._types import SpanAttributeValue, SpanKind, SpanRecord, TraceContext

logger = logging.getLogger("craftlocal_tracing.tracer")

T = TypeVar("T")

ErrorSink = Callable[[str, BaseException, Mapping[str, Any]], None]


def log_export_error(message: str, error: BaseException, context: Mapping[str, Any]) -> None:
    """Default error sink: one ERROR log record per failed export."""
    logger.error(
        "%s (exporter=%s)",
        message,
        context.get("exporter"),
        exc_info=error,
        extra={"tracing": dict(context)},
    )


class Tracer:
    """Creates spans, buffers finished records and flushes them to exporters.

    Records are exported at most once. After ``flush()`` swaps the buffer,
    the batch is handed to every exporter in turn; a failing exporter is
    reported to ``on_export_error`` and the batch is not retried for it.

    The active span is tracked per asyncio task (see ``_context``), so
    concurrent request handlers sharing one tracer keep separate span trees.
    """

    def __init__(
        self,
        name: str = DEFAULT_SERVICE_NAME,
        *,
        exporters: Iterable[SpanExporter] | None = None,
        batch_size: int = 100,
        flush_interval_ms: int = 5000,
        max_buffer_size: int = 8192,
        on_export_error: ErrorSink | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if flush_interval_ms <= 0:
            raise ValueError(f"flush_interval_ms must be > 0, got {flush_interval_ms}")

        self.name = name
        self._exporters: tuple[SpanExporter, ...] = (
            tuple(exporters) if exporters is not None else (ConsoleExporter(),)
        )
        self._batch_size = batch_size
        self._buffer = SpanBuffer(max(max_buffer_size, batch_size))
        self._processor = BackgroundProcessor(self.flush, flush_interval_ms=flush_interval_ms)
        self._on_export_error = on_export_error or log_export_error
        self._pending: set[asyncio.Task[None]] = set()
        self._is_shutdown = False

    @property
    def exporters(self) -> Sequence[SpanExporter]:
        return self._exporters

    @property
    def is_running(self) -> bool:
        """True while the periodic flush task is active."""
        return self._processor.is_running

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    # -- span creation -----------------------------------------------------

    def start_span(
        self,
        name: str,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, SpanAttributeValue] | None = None,
        parent: Span | TraceContext | None = None,
    ) -> Span:
        """Start a span and make it the active span.

        The parent is ``parent`` when given (e.g. a context extracted from an
        incoming request), else the currently active span.
        """
        if parent is None:
            parent = get_current_span()
        span = Span(name, sink=self, kind=kind, attributes=attributes, parent=parent)
        span.activate()
        return span

    async def start_active_span(
        self,
        name: str,
        fn: Callable[[Span], Awaitable[T] | T],
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, SpanAttributeValue] | None = None,
    ) -> T:
        """Run ``fn(span)`` inside a new active span.

        The span always ends. An exception from ``fn`` is recorded on the
        span (status ERROR) and re-raised unchanged. A status set by ``fn``
        itself is kept; an untouched span ends OK.
        """
        span = self.start_span(name, kind=kind, attributes=attributes)
        try:
            result = fn(span)
            if inspect.isawaitable(result):
                result = await result
        except BaseException as exc:
            span.record_exception(exc)
            raise
        finally:
            span.end()
        return result  # type: ignore[return-value]

    def get_current_span(self) -> Span | None:
        """Return the active span of the calling task, or None."""
        return get_current_span()

    # -- buffering and export ---------------------------------------------

    def record_span(self, record: SpanRecord) -> None:
        """Buffer a finished record; schedules a flush at ``batch_size``."""
        if self._is_shutdown:
            logger.debug("Tracer is shut down, dropping span %r", record.name)
            return
        self._buffer.append(record)
        if len(self._buffer) >= self._batch_size:
            task = run_soon(self.flush())
            if task is not None:
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Export every buffered record to every exporter."""
        spans = self._buffer.drain()
        if not spans:
            return

        for exporter in self._exporters:
            name = exporter_name(exporter)
            try:
                result = exporter.export(spans)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                self._report_error(
                    "Failed to export spans",
                    exc,
                    {"exporter": name, "span_count": len(spans)},
                )

    def _report_error(
        self, message: str, error: BaseException, context: Mapping[str, Any]
    ) -> None:
        try:
            self._on_export_error(message, error, context)
        except Exception:  # noqa: BLE001
            logger.exception("Export error sink failed")

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Start the periodic flush. Requires a running event loop."""
        self._processor.start()

    def stop(self) -> None:
        """Stop the periodic flush without flushing."""
        self._processor.stop()

    async def shutdown(self) -> None:
        """Stop the timer, flush what is buffered and shut down exporters.

        A slow exporter delays this coroutine; wrap it in
        ``asyncio.wait_for`` to bound the wait.
        """
        if self._is_shutdown:
            return
        self.stop()

        loop = asyncio.get_running_loop()
        pending = [t for t in self._pending if t.get_loop() is loop]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.flush()
        self._is_shutdown = True

        for exporter in self._exporters:
            try:
                result = exporter.shutdown()
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Exporter %s failed to shut down", exporter_name(exporter), exc_info=True
                )
        logger.debug("Tracer %r shut down", self.name)

    def __repr__(self) -> str:
        names = ", ".join(exporter_name(e) for e in self._exporters)
        return f"Tracer(name={self.name!r}, exporters=[{names}])"
