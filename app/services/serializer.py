"""Export to and import from the external OpenBadgeCredential JSON shape."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from app.core.clock import Clock, isoformat_z, parse_timestamp, utc_now
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.metrics import CREDENTIAL_IMPORTS
from app.models.achievement import Achievement, Criteria
from app.models.credential import Credential, Evidence
from app.models.profile import Profile
from app.repos.credential_repo import find_by_identifier
from app.repos.store import Store
from app.services.credential_builder import (
    build_credential_payload,
    proof_from_dict,
    proof_to_dict,
)
from app.services.proof_signer import ProofSigner, Signed

logger = logging.getLogger(__name__)


def to_open_badge(credential: Credential) -> dict[str, Any]:
    """The stored credential as OpenBadgeCredential JSON, proof included."""
    document = build_credential_payload(credential)
    if credential.proof:
        document["proof"] = [proof_to_dict(p) for p in credential.proof]
    return document


def credential_to_dict(credential: Credential) -> dict[str, Any]:
    """Internal record view (camelCase), used as ``rawCredential``."""
    return {
        "id": credential.id,
        "credentialId": credential.credential_id,
        "type": list(credential.type),
        "name": credential.name,
        "description": credential.description,
        "issuanceDate": isoformat_z(credential.issuance_date),
        "expirationDate": (
            isoformat_z(credential.expiration_date)
            if credential.expiration_date
            else None
        ),
        "revoked": credential.revoked,
        "revocationReason": credential.revocation_reason,
        "achievementId": credential.achievement_id,
        "issuerId": credential.issuer_id,
        "recipientId": credential.recipient_id,
        "proof": [proof_to_dict(p) for p in credential.proof],
    }


def serialize_credential(
    store: Store, signer: ProofSigner, identifier: str | int
) -> dict[str, Any]:
    """Export a stored credential, signing it first if it has no proof yet.

    Only a real signature is persisted; an unsigned placeholder is returned
    with the document but not written back, so a later export can retry.
    """
    credential = find_by_identifier(store.credentials, identifier)
    if credential is None:
        raise NotFoundError("Credential not found")

    if not credential.proof and credential.issuer_id is not None:
        outcome = signer.sign(build_credential_payload(credential), credential.issuer_id)
        if isinstance(outcome, Signed):
            credential = store.credentials.update(
                replace(credential, proof=(outcome.proof,))
            )
            logger.info(
                "Lazily signed credential %s on export",
                credential.credential_id,
                extra={"credential_id": credential.credential_id},
            )
        else:
            credential = replace(credential, proof=(outcome.proof,))

    return to_open_badge(credential)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _optional_timestamp(raw: Any, field: str):
    if raw in (None, ""):
        return None
    try:
        return parse_timestamp(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} is not a valid ISO-8601 timestamp") from None


def _find_or_create_issuer(store: Store, raw_issuer: Any) -> Profile:
    if isinstance(raw_issuer, Mapping):
        issuer_id = raw_issuer.get("id")
        fields = raw_issuer
    else:
        issuer_id = raw_issuer
        fields = {}
    if not isinstance(issuer_id, str) or not issuer_id:
        raise ValidationError("Credential issuer has no id")

    existing = store.profiles.get_by_did(issuer_id)
    if existing is not None:
        return existing

    return store.profiles.add(
        Profile.new(
            name=fields.get("name") or "Unknown Issuer",
            profile_type="Issuer",
            url=fields.get("url"),
            email=fields.get("email"),
            description=fields.get("description"),
            did=issuer_id,
        )
    )


def _find_or_create_achievement(
    store: Store, raw: Mapping[str, Any] | None, issuer: Profile
) -> Achievement | None:
    if not raw:
        return None

    external_id = raw.get("id")
    if external_id:
        existing = store.achievements.get_by_achievement_id(external_id)
        if existing is not None:
            return existing

    criteria = None
    raw_criteria = raw.get("criteria")
    if isinstance(raw_criteria, Mapping):
        criteria = Criteria(
            narrative=raw_criteria.get("narrative"), url=raw_criteria.get("id")
        )

    image = raw.get("image")
    types = _as_list(raw.get("type"))
    achievement = Achievement.new(
        name=raw.get("name") or "Unnamed achievement",
        description=raw.get("description") or "",
        creator_id=issuer.id,
        criteria=criteria,
        image_url=image.get("id") if isinstance(image, Mapping) else image,
        achievement_id=external_id,
    )
    if types:
        achievement = replace(achievement, achievement_type=str(types[0]))
    return store.achievements.add(achievement)


def _find_or_create_recipient(
    store: Store, subject: Mapping[str, Any]
) -> Profile | None:
    subject_id = subject.get("id")
    if not isinstance(subject_id, str) or not subject_id:
        return None

    if subject_id.startswith("mailto:"):
        email = subject_id.removeprefix("mailto:").strip().lower()
        existing = store.profiles.get_by_email(email)
        new = Profile.new(name=subject.get("name") or email, email=email)
    else:
        existing = store.profiles.get_by_did(subject_id)
        new = Profile.new(name=subject.get("name") or "Unknown Recipient", did=subject_id)

    return existing if existing is not None else store.profiles.add(new)


def import_credential(
    store: Store, vc: Mapping[str, Any], *, clock: Clock = utc_now
) -> Credential:
    """Persist an external OpenBadgeCredential as a local record.

    Issuer, achievement and recipient are matched on their external ids and
    created when absent. The imported record is never pre-revoked.
    """
    types = [str(t) for t in _as_list(vc.get("type"))]
    if "OpenBadgeCredential" not in types:
        raise ValidationError("Not a valid Open Badge Credential")

    credential_id = vc.get("id")
    if not isinstance(credential_id, str) or not credential_id:
        raise ValidationError("Credential id is required")

    if store.credentials.get_by_credential_id(credential_id) is not None:
        logger.warning(
            "Import rejected, credential %s already exists",
            credential_id,
            extra={"credential_id": credential_id},
        )
        raise ConflictError("Credential already exists")

    subject = vc.get("credentialSubject")
    if not isinstance(subject, Mapping):
        raise ValidationError("credentialSubject must be an object")

    issuance_date = _optional_timestamp(
        vc.get("issuanceDate") or vc.get("validFrom"), "issuanceDate"
    )
    expiration_date = _optional_timestamp(
        vc.get("expirationDate") or vc.get("validUntil"), "expirationDate"
    )
    proofs = tuple(proof_from_dict(p) for p in _as_list(vc.get("proof")))

    raw_achievement = subject.get("achievement")
    if raw_achievement is not None and not isinstance(raw_achievement, Mapping):
        raise ValidationError("credentialSubject.achievement must be an object")

    raw_evidence = _as_list(vc.get("evidence"))
    if not raw_evidence and raw_achievement:
        raw_evidence = _as_list(raw_achievement.get("evidence"))
    evidence_items = [e for e in raw_evidence if isinstance(e, Mapping)]

    raw_issuer = vc.get("issuer")
    issuer_snapshot = (
        dict(raw_issuer) if isinstance(raw_issuer, Mapping) else {"id": raw_issuer}
    )

    with store.transaction():
        issuer = _find_or_create_issuer(store, raw_issuer)
        achievement = _find_or_create_achievement(store, raw_achievement, issuer)
        recipient = _find_or_create_recipient(store, subject)

        credential = store.credentials.add(
            Credential(
                id=0,
                credential_id=credential_id,
                name=vc.get("name")
                or (achievement.name if achievement else "Unnamed credential"),
                description=vc.get("description")
                or (achievement.description if achievement else ""),
                issuance_date=issuance_date or clock(),
                expiration_date=expiration_date,
                type=tuple(types),
                issuer_snapshot=issuer_snapshot,
                subject_snapshot=dict(subject),
                evidence_snapshot=tuple(dict(e) for e in evidence_items),
                revoked=False,
                achievement_id=achievement.id if achievement else None,
                issuer_id=issuer.id,
                recipient_id=recipient.id if recipient else None,
                proof=proofs,
            )
        )

        for item in evidence_items:
            store.evidence.add(
                Evidence(
                    id=0,
                    credential_id=credential.id,
                    name=item.get("name"),
                    description=item.get("description"),
                    narrative=item.get("narrative"),
                    genre=item.get("genre"),
                    audience=item.get("audience"),
                    url=item.get("id"),
                )
            )

        if recipient is not None:
            store.profiles.update(
                replace(
                    recipient,
                    received_credential_ids=(
                        *recipient.received_credential_ids,
                        credential.id,
                    ),
                )
            )

    CREDENTIAL_IMPORTS.inc()
    logger.info(
        "Imported credential %s from issuer %s",
        credential.credential_id,
        issuer_snapshot.get("id"),
        extra={"credential_id": credential.credential_id, "issuer_id": issuer.id},
    )
    return credential
