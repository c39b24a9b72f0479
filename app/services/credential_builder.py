"""Open Badges 3.0 credential construction.

Two layers:

- snapshot builders (issuer_object, subject_object, evidence_object) turn
  stored Profile / Achievement / Evidence rows into the JSON objects a
  credential attests to. They run once, at issuance, and their output is
  frozen onto the Credential record.
- build_credential_payload assembles the full credential document from a
  Credential record alone. The signer signs its canonical bytes and the
  verifier recomputes them, so both sides must go through this function.

Optional fields that are absent are omitted, never emitted as null: the
signature covers exactly the emitted JSON.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from app.core.clock import isoformat_z, parse_timestamp
from app.core.errors import ValidationError
from app.models.achievement import Achievement
from app.models.credential import Credential, Evidence, Proof
from app.models.profile import Profile

CONTEXT: tuple[str, ...] = (
    "https://www.w3.org/ns/credentials/v2",
    "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
)


def _compact(obj: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in obj.items() if v is not None}


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    """Order-stable UTF-8 JSON: sorted keys, no insignificant whitespace."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def profile_uri(base_url: str, profile_id: int) -> str:
    return f"{base_url}/api/profiles/{profile_id}"


def verification_method_uri(base_url: str, issuer_id: int) -> str:
    return f"{profile_uri(base_url, issuer_id)}/keys"


# ---------------------------------------------------------------------------
# Snapshot builders
# ---------------------------------------------------------------------------


def issuer_object(issuer: Profile, base_url: str) -> dict[str, Any]:
    return _compact(
        {
            "id": profile_uri(base_url, issuer.id),
            "type": ["Profile"],
            "name": issuer.name,
            "url": issuer.url,
            "email": issuer.email,
            "image": (
                {"id": issuer.image_url, "type": "Image"} if issuer.image_url else None
            ),
        }
    )


def achievement_object(achievement: Achievement, base_url: str) -> dict[str, Any]:
    criteria = None
    if achievement.criteria is not None:
        criteria = _compact(
            {"id": achievement.criteria.url, "narrative": achievement.criteria.narrative}
        )

    alignments = [
        _compact(
            {
                "type": ["Alignment"],
                "targetName": a.target_name,
                "targetUrl": a.target_url,
                "targetDescription": a.target_description,
                "targetFramework": a.target_framework,
                "targetCode": a.target_code,
            }
        )
        for a in achievement.alignments
    ]

    return _compact(
        {
            "id": achievement.achievement_id
            or f"{base_url}/api/achievements/{achievement.id}",
            "type": [achievement.achievement_type or "Achievement"],
            "name": achievement.name,
            "description": achievement.description,
            "image": (
                {"id": achievement.image_url, "type": "Image"}
                if achievement.image_url
                else None
            ),
            "criteria": criteria or None,
            "alignments": alignments or None,
        }
    )


def subject_id_for(recipient: Profile | None) -> str | None:
    if recipient is None:
        return None
    if recipient.email:
        return f"mailto:{recipient.email}"
    return recipient.did


def subject_object(
    achievement: Achievement, recipient: Profile | None, base_url: str
) -> dict[str, Any]:
    return _compact(
        {
            "id": subject_id_for(recipient),
            "type": ["AchievementSubject"],
            "achievement": achievement_object(achievement, base_url),
        }
    )


def evidence_object(evidence: Evidence) -> dict[str, Any]:
    return _compact(
        {
            "id": evidence.url,
            "type": ["Evidence"],
            "name": evidence.name,
            "description": evidence.description,
            "narrative": evidence.narrative,
            "genre": evidence.genre,
            "audience": evidence.audience,
        }
    )


def build_credential(
    *,
    achievement: Achievement,
    issuer: Profile,
    recipient: Profile,
    issued_at: datetime,
    base_url: str,
    expiration_date: datetime | None = None,
) -> Credential:
    """Unsaved Credential (id 0, no proof) for achievement -> recipient.

    Deterministic for a given input snapshot apart from the fresh
    credential id; the issuance time is passed in, not read.
    """
    if achievement.creator_id is None:
        raise ValidationError(f"Achievement {achievement.id} has no creator issuer")
    if issuer.id != achievement.creator_id:
        raise ValidationError("Issuer does not match the achievement's creator")

    return Credential(
        id=0,
        credential_id=Credential.new_credential_id(),
        name=achievement.name,
        description=achievement.description,
        issuance_date=issued_at,
        expiration_date=expiration_date,
        issuer_snapshot=issuer_object(issuer, base_url),
        subject_snapshot=subject_object(achievement, recipient, base_url),
        achievement_id=achievement.id,
        issuer_id=issuer.id,
        recipient_id=recipient.id,
    )


# ---------------------------------------------------------------------------
# Payload assembly
# ---------------------------------------------------------------------------


def build_credential_payload(credential: Credential) -> dict[str, Any]:
    """The credential document without its proof: the exact signed content."""
    issued = isoformat_z(credential.issuance_date)
    payload: dict[str, Any] = {
        "@context": list(CONTEXT),
        "id": credential.credential_id,
        "type": list(credential.type),
        "issuer": copy.deepcopy(dict(credential.issuer_snapshot)),
        "issuanceDate": issued,
        "validFrom": issued,
        "name": credential.name,
        "description": credential.description,
        "credentialSubject": copy.deepcopy(dict(credential.subject_snapshot)),
    }
    if credential.expiration_date is not None:
        expires = isoformat_z(credential.expiration_date)
        payload["expirationDate"] = expires
        payload["validUntil"] = expires
    if credential.evidence_snapshot:
        payload["evidence"] = [copy.deepcopy(dict(e)) for e in credential.evidence_snapshot]
    return payload


def proof_to_dict(proof: Proof) -> dict[str, Any]:
    return _compact(
        {
            "type": proof.type,
            "created": isoformat_z(proof.created),
            "verificationMethod": proof.verification_method,
            "proofPurpose": proof.proof_purpose,
            "jws": proof.jws,
            "proofValue": proof.proof_value,
        }
    )


def proof_from_dict(raw: Mapping[str, Any]) -> Proof:
    """Parse an external proof object. Raises ValidationError if malformed."""
    if not isinstance(raw, Mapping):
        raise ValidationError("Proof must be an object")
    missing = [
        f
        for f in ("type", "created", "verificationMethod", "proofPurpose")
        if not raw.get(f)
    ]
    if missing:
        raise ValidationError(f"Proof is missing required fields: {', '.join(missing)}")
    try:
        created = parse_timestamp(raw["created"])
    except (TypeError, ValueError):
        raise ValidationError("Proof created timestamp is not ISO-8601") from None
    return Proof(
        type=str(raw["type"]),
        created=created,
        verification_method=str(raw["verificationMethod"]),
        proof_purpose=str(raw["proofPurpose"]),
        jws=raw.get("jws") or None,
        proof_value=raw.get("proofValue") or None,
    )
