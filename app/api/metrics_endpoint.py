"""Prometheus scrape endpoint.

Plain-text exposition format, e.g.:

  # HELP credentials_issued_total Credentials issued, by proof kind
  # TYPE credentials_issued_total counter
  credentials_issued_total{proof="signed"} 42.0
  credentials_issued_total{proof="unsigned"} 0.0

A non-zero ``unsigned`` series means issuance ran without a usable
signing key.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
