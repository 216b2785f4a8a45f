"""Prometheus metrics for the HTTP layer and the PartyStream lifecycles."""

from __future__ import annotations

import time

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

_REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    labelnames=("service", "method", "path", "status"),
)
_REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    labelnames=("service", "method", "path"),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

BOOKING_TRANSITIONS = Counter(
    "partystream_booking_transitions_total",
    "Booking status transitions",
    labelnames=("to_status",),
)
STREAM_TRANSITIONS = Counter(
    "partystream_stream_transitions_total",
    "Stream status transitions",
    labelnames=("to_status",),
)
WEBHOOK_EVENTS = Counter(
    "partystream_webhook_events_total",
    "Payment webhook events by outcome",
    labelnames=("event_type", "outcome"),
)
EXTERNAL_CALL_FAILURES = Counter(
    "partystream_external_call_failures_total",
    "Failed calls to payment or streaming collaborators",
    labelnames=("service", "operation"),
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect request counts and latencies keyed by route template."""

    def __init__(self, app: ASGIApp, *, service_name: str) -> None:
        super().__init__(app)
        self._service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        method = request.method.upper()
        start = time.perf_counter()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(getattr(response, "status_code", 500))
            return response
        finally:
            route = request.scope.get("route")
            path_template: str = getattr(route, "path", request.url.path)
            _REQUEST_COUNTER.labels(self._service_name, method, path_template, status_code).inc()
            _REQUEST_LATENCY.labels(self._service_name, method, path_template).observe(
                time.perf_counter() - start
            )


def setup_metrics(app: FastAPI, *, service_name: str) -> None:
    """Attach the metrics middleware and expose ``/metrics``."""

    if getattr(app.state, "_metrics_configured", False):
        return

    app.add_middleware(MetricsMiddleware, service_name=service_name)

    async def metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.add_api_route(
        "/metrics",
        metrics_endpoint,
        methods=["GET"],
        include_in_schema=False,
        name="metrics",
    )
    app.state._metrics_configured = True


__all__ = [
    "BOOKING_TRANSITIONS",
    "EXTERNAL_CALL_FAILURES",
    "STREAM_TRANSITIONS",
    "WEBHOOK_EVENTS",
    "MetricsMiddleware",
    "setup_metrics",
]
