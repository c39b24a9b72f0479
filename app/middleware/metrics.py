"""Prometheus metrics middleware: instruments every HTTP request.

For each request, this middleware:
  1. Increments the ACTIVE_REQUESTS gauge (decremented on completion)
  2. Times the request
  3. On completion: increments REQUEST_COUNT (by method/endpoint/status)
     and observes the duration in the REQUEST_DURATION histogram

MIDDLEWARE vs PER-ROUTE TIMING
--------------------------------
Each route could time itself:

  @router.get("/{credential_id}/verify")
  def verify_credential(credential_id: str, ...):
      start = time.monotonic()
      try:
          ...
      finally:
          REQUEST_DURATION.labels(...).observe(time.monotonic() - start)

That has to be repeated in every handler, and a handler that skips it is
invisible on the dashboard. The middleware covers every route, including
profile and achievement routes added later.

ENDPOINT LABEL
----------------
The label is the matched route template
(``/api/credentials/{credential_id}/verify``), not the raw URL path. Raw
paths carry credential URNs and numeric ids, so every credential would
open its own time series and the registry would grow without bound.
Requests that match no route are labelled ``unmatched``.

Domain counters (issuance, revocation, verification outcomes) are
incremented by the services themselves; see app/core/metrics.py.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION


def _endpoint_label(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if path else "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for every HTTP request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Prometheus scrapes would otherwise inflate the request count.
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code: str | None = None

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.monotonic() - start
            ACTIVE_REQUESTS.dec()
            endpoint = _endpoint_label(request)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code if status_code is not None else "500",
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(duration)

        return response
