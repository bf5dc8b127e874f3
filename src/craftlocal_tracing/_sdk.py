"""Process-wide default tracer — init, lookup and shutdown."""

from __future__ import annotations

import asyncio
import atexit
import dataclasses
import logging
from collections.abc import Iterable
from typing import Any

from craftlocal_tracing._config import TracingConfig, build_exporters
from craftlocal_tracing._exporter import SpanExporter
from craftlocal_tracing._processor import run_soon
from craftlocal_tracing._tracer import Tracer
from craftlocal_tracing._types import SpanRecord

logger = logging.getLogger("craftlocal_tracing.tracer")

_tracer_instance: Tracer | None = None
_atexit_registered = False
_pending_shutdowns: set[asyncio.Task[None]] = set()


class _NoopTracer(Tracer):
    """Fallback used when tracing is not initialized. Spans are silently discarded."""

    def __init__(self) -> None:
        super().__init__("noop", exporters=())

    def record_span(self, record: SpanRecord) -> None:
        pass


_noop = _NoopTracer()


def get_tracer() -> Tracer:
    """Return the initialized tracer, or a no-op fallback."""
    if _tracer_instance is not None:
        return _tracer_instance
    return _noop


def init(
    *,
    config: TracingConfig | None = None,
    exporters: Iterable[SpanExporter] | None = None,
    **overrides: Any,
) -> Tracer:
    """Initialize the process-wide tracer.

    ``config`` defaults to :meth:`TracingConfig.from_env`; keyword
    ``overrides`` replace individual config fields. ``exporters`` bypasses
    endpoint-based exporter selection.

    The periodic flush starts right away when called from a running event
    loop; otherwise call ``get_tracer().start()`` once the loop is up. A
    final flush is registered to run at interpreter exit.
    """
    global _tracer_instance, _atexit_registered  # noqa: PLW0603

    if _tracer_instance is not None:
        previous, _tracer_instance = _tracer_instance, None
        previous.stop()
        task = run_soon(previous.shutdown())
        if task is not None:
            _pending_shutdowns.add(task)
            task.add_done_callback(_pending_shutdowns.discard)

    if config is None:
        config = TracingConfig.from_env()
    if overrides:
        config = dataclasses.replace(config, **overrides)

    _tracer_instance = Tracer(
        config.service_name,
        exporters=list(exporters) if exporters is not None else build_exporters(config),
        batch_size=config.batch_size,
        flush_interval_ms=config.flush_interval_ms,
        max_buffer_size=config.max_buffer_size,
    )
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running event loop, periodic flush not started")
    else:
        _tracer_instance.start()

    if not _atexit_registered:
        atexit.register(_shutdown_at_exit)
        _atexit_registered = True
    return _tracer_instance


async def shutdown() -> None:
    """Shut down the default tracer, flushing any remaining spans."""
    global _tracer_instance  # noqa: PLW0603
    tracer, _tracer_instance = _tracer_instance, None
    if tracer is not None:
        await tracer.shutdown()


def _shutdown_at_exit() -> None:
    if _tracer_instance is None:
        return
    try:
        asyncio.run(shutdown())
    except Exception:  # noqa: BLE001
        logger.warning("Final trace flush at exit failed", exc_info=True)
