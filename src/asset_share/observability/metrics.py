"""Prometheus metrics for the share-link engine.

Engine code calls the ``observe_*`` helpers instead of touching label sets
directly, so label values stay within the enumerations defined here.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ── HTTP ──────────────────────────────────────────────────────────────

HTTP_REQUESTS_TOTAL = Counter(
    "share_http_requests_total",
    "HTTP requests by method, normalized path and status code.",
    labelnames=["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "share_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "share_http_requests_in_flight",
    "HTTP requests currently being processed.",
)

# ── Share links ───────────────────────────────────────────────────────

SHARE_ACCESS_DECISIONS = Counter(
    "share_access_decisions_total",
    "Access evaluations by outcome: ALLOW or the internal deny reason.",
    labelnames=["decision"],
)

SHARE_ACCESS_RECORDS = Counter(
    "share_access_records_total",
    "Accesses recorded against share links by access type.",
    labelnames=["access_type"],
)

SHARE_LINKS_ISSUED = Counter(
    "share_links_issued_total",
    "Share links created, split by password protection.",
    labelnames=["protected"],
)

PASSWORD_HASH_SECONDS = Histogram(
    "share_password_hash_seconds",
    "Time spent in Argon2 hashing and verification.",
    labelnames=["operation"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

ALLOW = "ALLOW"


def observe_decision(decision: str) -> None:
    SHARE_ACCESS_DECISIONS.labels(decision=decision).inc()


def observe_recorded(access_type: str) -> None:
    SHARE_ACCESS_DECISIONS.labels(decision=ALLOW).inc()
    SHARE_ACCESS_RECORDS.labels(access_type=access_type).inc()


def observe_issued(*, has_password: bool) -> None:
    SHARE_LINKS_ISSUED.labels(protected="true" if has_password else "false").inc()


def metrics_text() -> tuple[bytes, str]:
    """Exposition body and its content type for ``GET /metrics``."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
