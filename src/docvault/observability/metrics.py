"""Prometheus metrics for docvault.

Usage::

    from docvault.observability.metrics import SHARE_RESOLUTIONS_TOTAL

    SHARE_RESOLUTIONS_TOTAL.labels(outcome="expired").inc()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

HTTP_REQUESTS_TOTAL = Counter(
    "docvault_http_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "docvault_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

# outcome: "resolved" or a DenialReason value.
SHARE_RESOLUTIONS_TOTAL = Counter(
    "docvault_share_resolutions_total",
    "Share link resolution attempts by outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

# outcome: "recorded", "quota_exceeded", "not_found".
ACCESS_RECORDS_TOTAL = Counter(
    "docvault_access_records_total",
    "Access recording attempts by action and outcome.",
    labelnames=["action", "outcome"],
    registry=REGISTRY,
)

# event: "created", "revoked", "updated".
SHARE_GRANT_EVENTS_TOTAL = Counter(
    "docvault_share_grant_events_total",
    "Share grant lifecycle changes.",
    labelnames=["event"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Return (body, content_type) for a /metrics response."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
