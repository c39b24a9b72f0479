"""Credential issuance, verification, revocation and exchange endpoints.

POST /api/credentials/issue                        # issue one credential
POST /api/credentials/batch-issue                  # issue to many recipients
GET  /api/credentials/{id}/verify                  # verify a stored credential
POST /api/credentials/{id}/revoke                  # revoke (idempotent)
GET  /api/credentials/{id}/export                  # OpenBadgeCredential JSON
GET  /api/credentials/{id}/status                  # revocation status
POST /api/credentials/import                       # import an external credential
POST /api/credentials/validate                     # verify external JSON, no storage

``{id}`` is either the numeric primary key or the ``urn:uuid`` credential id.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.dependencies import Services, get_services
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.services import revocation_service
from app.services.issuance_service import EvidenceInput, IssuanceResult, RecipientInput
from app.services.serializer import (
    credential_to_dict,
    import_credential,
    serialize_credential,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/credentials", tags=["credentials"])


class RecipientIn(BaseModel):
    profile_id: int | None = None
    name: str | None = None
    email: str | None = None

    def to_input(self) -> RecipientInput:
        return RecipientInput(profile_id=self.profile_id, name=self.name, email=self.email)


class EvidenceIn(BaseModel):
    name: str | None = None
    description: str | None = None
    narrative: str | None = None
    genre: str | None = None
    audience: str | None = None
    url: str | None = None

    def to_input(self) -> EvidenceInput:
        return EvidenceInput(**self.model_dump())


class IssueIn(BaseModel):
    achievement_id: int
    recipient: RecipientIn
    evidence: list[EvidenceIn] = Field(default_factory=list)
    expiration_date: datetime | None = None


class BatchIssueIn(BaseModel):
    achievement_id: int
    recipients: list[RecipientIn] = Field(min_length=1)
    evidence: list[EvidenceIn] = Field(default_factory=list)


class RevokeIn(BaseModel):
    reason: str | None = None


def _issued_body(issued: IssuanceResult) -> dict[str, Any]:
    return {
        "credential": credential_to_dict(issued.credential),
        "openBadge": issued.open_badge,
        "signed": issued.signed,
    }


@router.post("/issue", status_code=status.HTTP_201_CREATED)
def issue_credential(
    payload: IssueIn,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        issued = services.issuance.issue(
            payload.achievement_id,
            payload.recipient.to_input(),
            [e.to_input() for e in payload.evidence],
            expiration_date=payload.expiration_date,
        )
    except NotFoundError as e:
        logger.warning("Issuance rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    except ValidationError as e:
        logger.warning("Invalid issuance payload: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=str(e),
        ) from None

    return _issued_body(issued)


@router.post("/batch-issue")
def batch_issue_credentials(
    payload: BatchIssueIn,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        results = services.issuance.batch_issue(
            payload.achievement_id,
            [r.to_input() for r in payload.recipients],
            [e.to_input() for e in payload.evidence],
        )
    except NotFoundError as e:
        logger.warning("Batch issuance rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    except ValidationError as e:
        logger.warning("Invalid batch issuance payload: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=str(e),
        ) from None

    body: list[dict[str, Any]] = []
    for r in results:
        item: dict[str, Any] = {"success": r.success, "recipient": r.recipient}
        if r.result is not None:
            item.update(_issued_body(r.result))
        else:
            item["error"] = r.error
        body.append(item)
    return {"results": body}


@router.post("/import", status_code=status.HTTP_201_CREATED)
def import_external_credential(
    vc: Annotated[dict[str, Any], Body()],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        credential = import_credential(services.store, vc, clock=services.clock)
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from None
    except ValidationError as e:
        logger.warning("Invalid credential import: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=str(e),
        ) from None

    return credential_to_dict(credential)


@router.post("/validate")
def validate_external_credential(
    vc: Annotated[Any, Body()],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    return services.verifier.validate_external_credential(vc).to_dict()


@router.get("/{credential_id}/verify")
def verify_credential(
    credential_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    result = services.verifier.verify_credential(credential_id)
    if result.raw_credential is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Credential not found"
        )
    return result.to_dict()


@router.post("/{credential_id}/revoke")
def revoke_credential(
    credential_id: str,
    services: Annotated[Services, Depends(get_services)],
    payload: RevokeIn | None = None,
) -> dict[str, Any]:
    reason = payload.reason if payload is not None else None
    try:
        credential = revocation_service.revoke_credential(
            services.store, credential_id, reason, clock=services.clock
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None

    return credential_to_dict(credential)


@router.get("/{credential_id}/export")
def export_credential(
    credential_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        return serialize_credential(services.store, services.signer, credential_id)
    except NotFoundError as e:
        logger.warning("Export rejected for %s: %s", credential_id, e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None


@router.get("/{credential_id}/status")
def credential_status(
    credential_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        return revocation_service.check_credential_status(services.store, credential_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
