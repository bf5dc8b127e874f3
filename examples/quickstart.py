"""CraftLocal tracing quick start — a traced checkout calling an upstream API."""

import asyncio

import httpx

import craftlocal_tracing
from craftlocal_tracing import SpanKind
from craftlocal_tracing.integrations.httpx import instrument


@craftlocal_tracing.trace(name="cart.total")
def cart_total(prices: list[float]) -> float:
    return round(sum(prices), 2)


async def main() -> None:
    # 1. Initialize inside the loop so the periodic flush starts.
    #    CRAFTLOCAL_OTLP_ENDPOINT / _JAEGER_ENDPOINT / _ZIPKIN_ENDPOINT add collectors.
    tracer = craftlocal_tracing.init(service_name="craftlocal-web", flush_interval_ms=1000)

    # 2. Outbound requests carry a traceparent header and become CLIENT spans
    client = instrument(httpx.AsyncClient(timeout=5.0))

    async def checkout(span: craftlocal_tracing.Span) -> float:
        span.set_attribute("cart.items", 2)
        total = cart_total([18.5, 7.25])
        span.add_event("cart.priced", {"total": total})
        try:
            await client.get("https://httpbin.org/status/200")
        except httpx.HTTPError:
            span.add_event("payment.unreachable")
        return total

    # 3. Trace a request handler
    total = await tracer.start_active_span("POST /checkout", checkout, kind=SpanKind.SERVER)
    print(f"Order total: {total}")

    await client.aclose()

    # 4. Shutdown (flushes remaining spans)
    await craftlocal_tracing.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
