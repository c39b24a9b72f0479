"""Per-issuer revocation (status) lists.

POST /api/revocation-lists                         # create a list for an issuer
GET  /api/revocation-lists/{id}/status/{index}     # is index revoked?
POST /api/revocation-lists/{id}/revoke/{index}     # revoke index (idempotent)
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel

from app.api.dependencies import Services, get_services
from app.core.clock import isoformat_z
from app.core.errors import NotFoundError, ValidationError
from app.models.revocation_list import RevocationList
from app.services import revocation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/revocation-lists", tags=["revocation"])


class StatusListCreateIn(BaseModel):
    issuer_id: int
    status_purpose: str = "revocation"


def _list_body(status_list: RevocationList) -> dict[str, Any]:
    return {
        "id": status_list.id,
        "issuerId": status_list.issuer_id,
        "statusListCredential": status_list.status_list_credential,
        "statusPurpose": status_list.status_purpose,
        "encodedList": status_list.encoded_list,
        "lastUpdated": isoformat_z(status_list.last_updated),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_status_list(
    payload: StatusListCreateIn,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        status_list = revocation_service.create_status_list(
            services.store,
            payload.issuer_id,
            payload.status_purpose,
            clock=services.clock,
        )
    except NotFoundError as e:
        logger.warning("Status list rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None

    return _list_body(status_list)


@router.get("/{list_id}/status/{index}")
def check_status(
    list_id: int,
    index: Annotated[int, Path(ge=0)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    status_list = services.store.revocation_lists.get_by_id(list_id)
    if status_list is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Status list not found"
        )
    try:
        revoked = revocation_service.check_status_in_list(status_list, index)
    except ValidationError as e:
        logger.error("Corrupt status list id=%d: %s", list_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Status list is corrupt",
        ) from None

    return {"revoked": revoked}


@router.post("/{list_id}/revoke/{index}")
def revoke_index(
    list_id: int,
    index: Annotated[int, Path(ge=0)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        status_list = revocation_service.revoke_credential_in_status_list(
            services.store, list_id, index, clock=services.clock
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None

    return _list_body(status_list)
