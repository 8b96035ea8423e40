"""Prometheus metrics for the thinkstream API.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for streamed frames and fallback activations.
"""

from __future__ import annotations

import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "thinkstream_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

STREAM_FRAMES = Counter(
    "thinkstream_stream_frames_total",
    "Frames written to streaming channels",
    labelnames=("type",),
)

FALLBACK_ACTIVATIONS = Counter(
    "thinkstream_fallback_activations_total",
    "Generations served by the deterministic fallback",
    labelnames=("reason",),
)


def sanitize_path(path: str) -> str:
    """Reduce a request path to its top-level segment to keep label cardinality low."""
    if not path:
        return "/"
    segs = path.split("?")[0].split("/")
    if len(segs) > 1:
        return "/" + segs[1]
    return path


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        try:
            REQUEST_LATENCY.labels(
                method=request.method,
                path=sanitize_path(request.url.path),
                status=str(response.status_code),
            ).observe(elapsed)
        except Exception:
            # Metrics must never fail the request
            pass
        return response

    return middleware
