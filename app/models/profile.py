from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class PublicKeyDescriptor:
    """A verification key published for a profile."""

    id: str
    public_key_jwk: Mapping[str, Any]
    type: str = "Ed25519VerificationKey2020"


@dataclass(frozen=True, slots=True)
class Profile:
    """An issuer, a recipient, or both; the stored form of an Open Badges Profile.

    id == 0 means "not yet stored"; the repo assigns the primary key.
    """

    id: int
    name: str
    profile_type: str = "Recipient"  # Issuer|Recipient|Both
    email: str | None = None
    url: str | None = None
    did: str | None = None
    description: str | None = None
    image_url: str | None = None
    public_keys: tuple[PublicKeyDescriptor, ...] = ()
    received_credential_ids: tuple[int, ...] = field(default=())

    @staticmethod
    def new(
        *,
        name: str,
        profile_type: str = "Recipient",
        email: str | None = None,
        url: str | None = None,
        did: str | None = None,
        description: str | None = None,
    ) -> Profile:
        return Profile(
            id=0,
            name=name,
            profile_type=profile_type,
            email=email,
            url=url,
            did=did,
            description=description,
        )
