"""Issuer/recipient profiles and their published verification keys.

POST /api/profiles                                 # create a profile
GET  /api/profiles/{id}                            # Open Badges Profile JSON
GET  /api/profiles/{id}/keys                       # verification key document (a proof's verificationMethod)
GET  /api/profiles/{id}/jwks                       # the same keys as a JWK Set
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.dependencies import Services, get_services
from app.core.errors import NotFoundError
from app.models.profile import Profile
from app.services.credential_builder import profile_uri, verification_method_uri

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class ProfileCreateIn(BaseModel):
    name: str
    profile_type: Literal["Issuer", "Recipient", "Both"] = "Issuer"
    email: str | None = None
    url: str | None = None
    did: str | None = None
    description: str | None = None


def _profile_body(profile: Profile, base_url: str) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": profile_uri(base_url, profile.id),
        "type": ["Profile"],
        "name": profile.name,
        "profileType": profile.profile_type,
    }
    for key, value in (
        ("email", profile.email),
        ("url", profile.url),
        ("did", profile.did),
        ("description", profile.description),
    ):
        if value is not None:
            body[key] = value
    return body


def _get_profile(services: Services, profile_id: int) -> Profile:
    profile = services.store.profiles.get_by_id(profile_id)
    if profile is None:
        logger.warning("Profile %d not found", profile_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


@router.post("", status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreateIn,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    email = payload.email.strip().lower() if payload.email else None
    if email and services.store.profiles.get_by_email(email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="email already exists"
        )

    profile = services.store.profiles.add(
        Profile.new(
            name=payload.name,
            profile_type=payload.profile_type,
            email=email,
            url=payload.url,
            did=payload.did,
            description=payload.description,
        )
    )
    logger.info("Created %s profile id=%d", profile.profile_type, profile.id)
    return _profile_body(profile, services.base_url)


@router.get("/{profile_id}")
def get_profile(
    profile_id: int,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    return _profile_body(_get_profile(services, profile_id), services.base_url)


@router.get("/{profile_id}/keys")
def get_profile_keys(
    profile_id: int,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    _get_profile(services, profile_id)
    try:
        descriptor = services.keys.key_descriptor(profile_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None

    return {
        "id": verification_method_uri(services.base_url, profile_id),
        "type": descriptor.type,
        "controller": profile_uri(services.base_url, profile_id),
        "publicKeyJwk": {**descriptor.public_key_jwk, "kid": descriptor.id},
    }


@router.get("/{profile_id}/jwks")
def get_profile_jwks(
    profile_id: int,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    try:
        return services.keys.jwks(profile_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
