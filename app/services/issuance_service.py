"""Credential issuance: single and batch.

One issuance is a single unit of work: recipient resolution, credential
creation, evidence rows, the issuer key registration done by the signer
and the recipient's credential link either all land or none do.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from app.core.clock import Clock, parse_timestamp, utc_now
from app.core.errors import CredentialServiceError, NotFoundError, ValidationError
from app.core.metrics import CREDENTIALS_ISSUED
from app.models.achievement import Achievement
from app.models.credential import Credential, Evidence
from app.models.profile import Profile
from app.repos.store import Store
from app.services.credential_builder import (
    build_credential,
    build_credential_payload,
    evidence_object,
)
from app.services.proof_signer import ProofSigner, Signed
from app.services.serializer import to_open_badge

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True, slots=True)
class RecipientInput:
    """Either an existing profile id, or a name + email to find-or-create."""

    profile_id: int | None = None
    name: str | None = None
    email: str | None = None

    @property
    def label(self) -> str | None:
        if self.email:
            return self.email
        if self.profile_id is not None:
            return str(self.profile_id)
        return self.name


@dataclass(frozen=True, slots=True)
class EvidenceInput:
    name: str | None = None
    description: str | None = None
    narrative: str | None = None
    genre: str | None = None
    audience: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class IssuanceResult:
    credential: Credential
    open_badge: dict[str, Any]
    signed: bool


@dataclass(frozen=True, slots=True)
class BatchItemResult:
    recipient: str | None
    success: bool
    result: IssuanceResult | None = None
    error: str | None = None


class IssuanceService:
    def __init__(
        self,
        store: Store,
        signer: ProofSigner,
        *,
        base_url: str,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._signer = signer
        self._base_url = base_url
        self._clock = clock

    def get_issuable_achievement(self, achievement_id: int) -> Achievement:
        achievement = self._store.achievements.get_by_id(achievement_id)
        if achievement is None or not achievement.published:
            logger.warning("Issuance rejected, achievement %s not found", achievement_id)
            raise NotFoundError("Achievement not found")
        if achievement.creator_id is None:
            raise ValidationError("Achievement has no creator issuer")
        return achievement

    def resolve_recipient(self, recipient: RecipientInput) -> Profile:
        """Existing profile by id, else find-or-create by exact email."""
        profiles = self._store.profiles

        if recipient.profile_id is not None:
            profile = profiles.get_by_id(recipient.profile_id)
            if profile is None:
                raise NotFoundError("Recipient profile not found")
            return profile

        if recipient.email is None:
            raise ValidationError("Recipient profile id or email is required")

        email = recipient.email.strip().lower()
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"Invalid recipient email: {recipient.email!r}")

        profile = profiles.get_by_email(email)
        if profile is not None:
            return profile

        profile = profiles.add(
            Profile.new(name=(recipient.name or "").strip() or email, email=email)
        )
        logger.info("Created recipient profile id=%d", profile.id)
        return profile

    def issue(
        self,
        achievement_id: int,
        recipient: RecipientInput,
        evidence: Sequence[EvidenceInput] = (),
        expiration_date: datetime | None = None,
    ) -> IssuanceResult:
        achievement = self.get_issuable_achievement(achievement_id)
        if expiration_date is not None:
            # Naive values are taken as UTC.
            expiration_date = parse_timestamp(expiration_date)
        store = self._store

        with store.transaction():
            issuer = store.profiles.get_by_id(achievement.creator_id)
            if issuer is None:
                raise NotFoundError("Issuer not found")
            recipient_profile = self.resolve_recipient(recipient)

            credential = store.credentials.add(
                build_credential(
                    achievement=achievement,
                    issuer=issuer,
                    recipient=recipient_profile,
                    issued_at=self._clock(),
                    base_url=self._base_url,
                    expiration_date=expiration_date,
                )
            )

            rows = [
                store.evidence.add(
                    Evidence(
                        id=0,
                        credential_id=credential.id,
                        name=e.name,
                        description=e.description,
                        narrative=e.narrative,
                        genre=e.genre,
                        audience=e.audience,
                        url=e.url,
                    )
                )
                for e in evidence
                if e.name or e.description
            ]
            if rows:
                credential = replace(
                    credential,
                    evidence_snapshot=tuple(evidence_object(r) for r in rows),
                )

            outcome = self._signer.sign(build_credential_payload(credential), issuer.id)
            credential = store.credentials.update(
                replace(credential, proof=(outcome.proof,))
            )

            # Re-read: the signer may have just published a key on this profile.
            recipient_profile = store.profiles.get_by_id(recipient_profile.id)
            store.profiles.update(
                replace(
                    recipient_profile,
                    received_credential_ids=(
                        *recipient_profile.received_credential_ids,
                        credential.id,
                    ),
                )
            )

        signed = isinstance(outcome, Signed)
        CREDENTIALS_ISSUED.labels(proof="signed" if signed else "unsigned").inc()
        logger.info(
            "Issued credential %s achievement=%d recipient=%d signed=%s",
            credential.credential_id,
            achievement.id,
            recipient_profile.id,
            signed,
            extra={"credential_id": credential.credential_id, "issuer_id": issuer.id},
        )
        return IssuanceResult(
            credential=credential,
            open_badge=to_open_badge(credential),
            signed=signed,
        )

    def batch_issue(
        self,
        achievement_id: int,
        recipients: Sequence[RecipientInput],
        evidence: Sequence[EvidenceInput] = (),
    ) -> list[BatchItemResult]:
        """Issue to each recipient in order; one failure never stops the rest."""
        self.get_issuable_achievement(achievement_id)

        results: list[BatchItemResult] = []
        for recipient in recipients:
            try:
                issued = self.issue(achievement_id, recipient, evidence)
            except CredentialServiceError as e:
                logger.warning("Batch issuance failed for %s: %s", recipient.label, e)
                results.append(
                    BatchItemResult(recipient=recipient.label, success=False, error=str(e))
                )
            except Exception as e:
                logger.exception("Unexpected batch issuance error for %s", recipient.label)
                results.append(
                    BatchItemResult(recipient=recipient.label, success=False, error=str(e))
                )
            else:
                results.append(
                    BatchItemResult(recipient=recipient.label, success=True, result=issued)
                )

        logger.info(
            "Batch issuance achievement=%d: %d/%d succeeded",
            achievement_id,
            sum(r.success for r in results),
            len(results),
        )
        return results
