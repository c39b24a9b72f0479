from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

CREDENTIAL_TYPES: tuple[str, ...] = ("VerifiableCredential", "OpenBadgeCredential")
PROOF_TYPE = "Ed25519Signature2020"
PROOF_PURPOSE = "assertionMethod"


@dataclass(frozen=True, slots=True)
class Proof:
    """Embedded attestation. Exactly one of jws / proof_value is set.

    A proof carrying only proof_value is the unsigned placeholder produced
    when key material was unavailable at signing time.
    """

    type: str
    created: datetime
    verification_method: str
    proof_purpose: str = PROOF_PURPOSE
    jws: str | None = None
    proof_value: str | None = None

    @property
    def is_signed(self) -> bool:
        return self.jws is not None


@dataclass(frozen=True, slots=True)
class Evidence:
    id: int
    credential_id: int
    name: str | None = None
    description: str | None = None
    narrative: str | None = None
    genre: str | None = None
    audience: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class Credential:
    """Issued credential instance, the stored form of an OpenBadgeCredential.

    issuer_snapshot / subject_snapshot / evidence_snapshot hold the exact
    JSON objects emitted at issuance; the signed payload is rebuilt from
    this record alone.
    """

    id: int
    credential_id: str  # urn:uuid:<v4>, immutable
    name: str
    description: str
    issuance_date: datetime
    issuer_snapshot: Mapping[str, Any]
    subject_snapshot: Mapping[str, Any]
    type: tuple[str, ...] = CREDENTIAL_TYPES
    evidence_snapshot: tuple[Mapping[str, Any], ...] = ()
    expiration_date: datetime | None = None
    revoked: bool = False
    revocation_reason: str | None = None
    achievement_id: int | None = None
    issuer_id: int | None = None
    recipient_id: int | None = None
    proof: tuple[Proof, ...] = ()

    @staticmethod
    def new_credential_id() -> str:
        return f"urn:uuid:{uuid4()}"
