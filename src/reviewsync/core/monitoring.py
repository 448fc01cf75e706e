"""Prometheus metrics, Sentry integration, and analysis call tracking.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Sync counters updated by the orchestrator and reconciliation engine
- track_analysis_call(): Context manager for analysis collaborator metrics
- init_sentry(): Initialize Sentry with connection-aware event tagging
- get_metrics_response(): Prometheus exposition for /metrics
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
import structlog
from prometheus_client import REGISTRY, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
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

# ── Sync Metrics ─────────────────────────────────────────────────────────────

sync_runs_total = Counter(
    "reviewsync_sync_runs_total",
    "Sync invocations by platform and final connection status",
    ["platform", "status"],
)

sync_duration_seconds = Histogram(
    "reviewsync_sync_duration_seconds",
    "Wall time of one sync invocation",
    ["platform"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

reviews_reconciled_total = Counter(
    "reviewsync_reviews_reconciled_total",
    "Reviews processed by reconciliation",
    ["platform", "result"],
)

analysis_requests_total = Counter(
    "reviewsync_analysis_requests_total",
    "Review analysis collaborator calls",
    ["status"],
)

analysis_duration_seconds = Histogram(
    "reviewsync_analysis_duration_seconds",
    "Review analysis collaborator latency",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

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


# ── Analysis Metrics Helper ─────────────────────────────────────────────────


@asynccontextmanager
async def track_analysis_call() -> AsyncGenerator[dict[str, Any], None]:
    """Record duration and outcome of one analysis collaborator call.

    Usage:
        async with track_analysis_call():
            result = await analyzer.analyze(review)
    """
    tracker: dict[str, Any] = {}
    start_time = time.perf_counter()
    status = "success"
    try:
        yield tracker
    except BaseException:
        status = "error"
        raise
    finally:
        analysis_requests_total.labels(status=status).inc()
        analysis_duration_seconds.observe(time.perf_counter() - start_time)


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK, tagging events with the bound connection id.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Copy structlog context (connection_id, platform) into Sentry tags."""
        context = structlog.contextvars.get_contextvars()
        tags = event.setdefault("tags", {})
        for key in ("connection_id", "platform", "request_id"):
            if key in context:
                tags[key] = context[key]
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
