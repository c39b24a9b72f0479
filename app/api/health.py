"""Health and readiness endpoints.

  /health (liveness):
    "Is this process alive?"  Always 200; the ``status`` field says
    whether the service is fully functional or degraded.

  /ready (readiness):
    "Can this instance handle traffic right now?"  Always 200 for the
    in-memory store.

A missing or broken signing key does not make the service unhealthy:
issuance still works in degraded mode, producing unsigned placeholder
proofs that verification rejects. /health reports it as ``degraded`` so
an operator notices before credentials go out unsigned.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from app.api.dependencies import Services, get_services
from app.core.errors import ConfigurationError

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: Annotated[Services, Depends(get_services)]) -> dict:
    checks: dict[str, str] = {"store": "ok"}
    overall = "ok"

    try:
        services.keys.load_signing_key()
        checks["signing_key"] = "ok"
    except ConfigurationError:
        checks["signing_key"] = "unavailable"
        overall = "degraded"

    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    return Response(status_code=200)
