"""Application metrics using the Prometheus client library.

All metrics are defined here so there is a single inventory of what the
service measures. Other modules import specific metrics and increment or
observe them at the point of action.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Credential lifecycle metrics
# ---------------------------------------------------------------------------

CREDENTIALS_ISSUED = Counter(
    "credentials_issued_total",
    "Credentials issued, by proof kind",
    ["proof"],  # "signed" or "unsigned" (placeholder proof after a key failure)
)

CREDENTIAL_VERIFICATIONS = Counter(
    "credential_verifications_total",
    "Verification requests by source and outcome",
    ["source", "result"],  # source: stored|external, result: verified|failed
)

CREDENTIAL_REVOCATIONS = Counter(
    "credential_revocations_total",
    "Credentials newly marked as revoked",
)

CREDENTIAL_IMPORTS = Counter(
    "credential_imports_total",
    "External Open Badges credentials imported",
)
