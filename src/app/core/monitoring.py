"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Domain counters for the capital call / allocation state machine
- init_sentry(): Initialize Sentry with user-aware before_send callback
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently being served",
)

# ── Domain Metrics ───────────────────────────────────────────────────────────

capital_calls_created_total = Counter(
    "capital_calls_created_total",
    "Capital calls created",
    ["source"],
)

capital_call_payments_total = Counter(
    "capital_call_payments_total",
    "Payments recorded against capital calls",
    ["payment_type"],
)

capital_call_status_transitions_total = Counter(
    "capital_call_status_transitions_total",
    "Capital call status transitions",
    ["from_status", "to_status"],
)

allocation_status_transitions_total = Counter(
    "allocation_status_transitions_total",
    "Fund allocation status transitions",
    ["from_status", "to_status"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


def _endpoint_label(request: Request) -> str:
    """Use the matched route template to keep label cardinality bounded."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        http_requests_in_progress.inc()
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            http_requests_in_progress.dec()
        duration = time.perf_counter() - start_time

        endpoint = _endpoint_label(request)
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


_SCRUBBED_HEADERS = frozenset({"authorization", "cookie"})


def _scrub_credentials(event: dict, hint: dict) -> dict:
    """Strip session cookies and Bearer tokens before an event leaves the process."""
    request = event.get("request") or {}
    cookies = request.get("cookies")
    if isinstance(cookies, dict):
        request["cookies"] = {name: "[Filtered]" for name in cookies}
    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            name: "[Filtered]" if name.lower() in _SCRUBBED_HEADERS else value
            for name, value in headers.items()
        }
    return event


def init_sentry(dsn: str, environment: str, traces_sample_rate: float | None = None) -> None:
    """Initialize Sentry with the FastAPI integration.

    Production samples 10% of transactions unless a rate is given;
    other environments sample everything.
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    if traces_sample_rate is None:
        traces_sample_rate = 0.1 if environment == "production" else 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        integrations=[StarletteIntegration(), FastApiIntegration()],
        before_send=_scrub_credentials,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
