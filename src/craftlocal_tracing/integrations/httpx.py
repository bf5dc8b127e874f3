"""httpx auto-instrumentation — every outbound request becomes a CLIENT span.

Usage::

    import httpx
    from craftlocal_tracing.integrations.httpx import instrument

    client = instrument(httpx.AsyncClient())

    # Requests now carry a traceparent header and produce spans automatically.
    response = await client.get("https://api.example.test/listings")
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from craftlocal_tracing._propagation import inject
from craftlocal_tracing._span import Span
from craftlocal_tracing._tracer import Tracer
from craftlocal_tracing._types import SpanKind, SpanStatus

_ORIGINAL_SEND = "_craftlocal_original_send"

AsyncSend = Callable[..., Awaitable[httpx.Response]]
SyncSend = Callable[..., httpx.Response]


def instrument(
    client: httpx.AsyncClient | httpx.Client,
    tracer: Tracer | None = None,
) -> httpx.AsyncClient | httpx.Client:
    """Wrap ``client.send`` so every request is traced.

    ``tracer`` defaults to the process-wide tracer, looked up per request so
    clients may be instrumented before ``init()``. Instrumenting the same
    client twice is a no-op. Returns the same client object.
    """
    if getattr(client, _ORIGINAL_SEND, None) is not None:
        return client

    original = client.send

    if isinstance(client, httpx.AsyncClient):

        async def send_async(request: httpx.Request, **kwargs: Any) -> httpx.Response:
            return await _send_async(original, request, kwargs, tracer)

        setattr(client, _ORIGINAL_SEND, original)
        client.send = send_async  # type: ignore[method-assign]
    else:

        def send(request: httpx.Request, **kwargs: Any) -> httpx.Response:
            return _send(original, request, kwargs, tracer)

        setattr(client, _ORIGINAL_SEND, original)
        client.send = send  # type: ignore[method-assign]
    return client


def uninstrument(client: httpx.AsyncClient | httpx.Client) -> None:
    """Restore the client's original ``send``."""
    if getattr(client, _ORIGINAL_SEND, None) is None:
        return
    delattr(client, _ORIGINAL_SEND)
    del client.send


def _resolve(tracer: Tracer | None) -> Tracer:
    if tracer is not None:
        return tracer
    from craftlocal_tracing._sdk import get_tracer

    return get_tracer()


def _before_send(span: Span, request: httpx.Request) -> None:
    span.set_attributes(
        {
            "http.method": request.method,
            "http.url": str(request.url),
        }
    )
    inject(span.get_trace_context(), request.headers)


def _response_size(response: httpx.Response) -> int:
    length = response.headers.get("content-length")
    if length is not None and length.isdigit():
        return int(length)
    try:
        return len(response.content)
    except httpx.ResponseNotRead:
        return 0


def _after_response(span: Span, response: httpx.Response) -> None:
    span.set_attributes(
        {
            "http.status_code": response.status_code,
            "http.response_content_length": _response_size(response),
        }
    )
    if response.is_error:
        span.set_status(SpanStatus.ERROR, f"HTTP {response.status_code}")


async def _send_async(
    send: AsyncSend,
    request: httpx.Request,
    kwargs: dict[str, Any],
    tracer: Tracer | None,
) -> httpx.Response:
    async def call(span: Span) -> httpx.Response:
        _before_send(span, request)
        response = await send(request, **kwargs)
        _after_response(span, response)
        return response

    return await _resolve(tracer).start_active_span(
        f"HTTP {request.method}", call, kind=SpanKind.CLIENT
    )


def _send(
    send: SyncSend,
    request: httpx.Request,
    kwargs: dict[str, Any],
    tracer: Tracer | None,
) -> httpx.Response:
    with _resolve(tracer).start_span(f"HTTP {request.method}", kind=SpanKind.CLIENT) as span:
        _before_send(span, request)
        response = send(request, **kwargs)
        _after_response(span, response)
        return response
