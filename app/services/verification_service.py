"""Credential verification.

Stored credentials go through ordered checks, each adding one entry to the
verdict and stopping at the first error:

    not_revoked -> not_expired -> proof

``proof`` covers both the structure of the proof block and the JWS over the
canonical payload rebuilt from the record. A missing credential yields a
single ``existence`` error.

External credentials (JSON handed to us, not stored) get a format check
first, then issuer, proof and expiration checks. Only the format check
short-circuits; issuer and proof may end as warnings.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from app.core.clock import Clock, parse_timestamp, utc_now, years_before
from app.core.errors import NotFoundError, ValidationError
from app.core.metrics import CREDENTIAL_VERIFICATIONS
from app.models.credential import Credential
from app.models.profile import Profile
from app.models.verification import VerificationCheck, VerificationResult
from app.repos.credential_repo import find_by_identifier
from app.repos.store import Store
from app.services.credential_builder import (
    build_credential_payload,
    canonical_json,
    proof_to_dict,
)
from app.services.key_provider import KeyProvider, jwk_to_public_key
from app.services.proof_signer import verify_jws
from app.services.revocation_service import DEFAULT_REVOCATION_MESSAGE
from app.services.serializer import credential_to_dict, to_open_badge

logger = logging.getLogger(__name__)

PROOF_PURPOSES = frozenset({"assertionMethod", "authentication", "keyAgreement"})
REQUIRED_PROOF_FIELDS = ("type", "created", "verificationMethod", "proofPurpose")
OPTIONAL_PROOF_FIELDS = ("jws", "proofValue")
REQUIRED_TYPES = ("VerifiableCredential", "OpenBadgeCredential")

_METHOD_RE = re.compile(r"/api/profiles/(\d+)/keys/?$")
_PROFILE_PATH_RE = re.compile(r"/profiles/(\d+)(?:/|$)")


def check_proof_structure(
    proof: Mapping[str, Any], now: datetime, max_age_years: int
) -> str | None:
    """Error message for a malformed or stale proof block, else None."""
    missing = [f for f in REQUIRED_PROOF_FIELDS if not proof.get(f)]
    if missing:
        return f"Proof is missing required fields: {', '.join(missing)}"
    not_strings = [
        f
        for f in (*REQUIRED_PROOF_FIELDS, *OPTIONAL_PROOF_FIELDS)
        if proof.get(f) is not None and not isinstance(proof[f], str)
    ]
    if not_strings:
        return f"Proof fields must be strings: {', '.join(not_strings)}"
    if not proof.get("proofValue") and not proof.get("jws"):
        return "Proof has neither proofValue nor jws"
    if proof["proofPurpose"] not in PROOF_PURPOSES:
        return f"Invalid proof purpose: {proof['proofPurpose']}"
    try:
        created = parse_timestamp(proof["created"])
    except (TypeError, ValueError):
        return "Proof created timestamp is invalid"
    if created < years_before(now, max_age_years):
        return f"Proof exceeds the {max_age_years}-year age limit"
    return None


def validate_credential_format(vc: Mapping[str, Any]) -> str | None:
    if not vc.get("id"):
        return "Missing required field: id"

    types = vc.get("type")
    if isinstance(types, str):
        types = [types]
    if not isinstance(types, list) or not all(t in types for t in REQUIRED_TYPES):
        return "Credential type must include VerifiableCredential and OpenBadgeCredential"

    issuer = vc.get("issuer")
    if not issuer:
        return "Missing required field: issuer"
    if isinstance(issuer, Mapping) and not issuer.get("id"):
        return "Issuer object must have an id"
    if not isinstance(issuer, (str, Mapping)):
        return "Issuer must be a URI or an object"

    if not isinstance(vc.get("credentialSubject"), Mapping):
        return "Missing required field: credentialSubject"

    if not (vc.get("issuanceDate") or vc.get("validFrom")):
        return "Missing required field: issuanceDate"
    return None


def _first_proof(raw: Any) -> Mapping[str, Any] | None:
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    return raw if isinstance(raw, Mapping) else None


class CredentialVerifier:
    def __init__(
        self,
        store: Store,
        keys: KeyProvider,
        *,
        clock: Clock = utc_now,
        proof_max_age_years: int = 10,
    ) -> None:
        self._store = store
        self._keys = keys
        self._clock = clock
        self._max_age_years = proof_max_age_years

    # -----------------------------------------------------------------------
    # Stored credentials
    # -----------------------------------------------------------------------

    def verify_credential(self, identifier: str | int) -> VerificationResult:
        credential = find_by_identifier(self._store.credentials, identifier)
        if credential is None:
            logger.warning("Verification requested for unknown credential %s", identifier)
            return self._record(
                "stored",
                VerificationResult(
                    verified=False,
                    checks=(VerificationCheck("existence", "error", "Credential not found"),),
                ),
            )

        checks: list[VerificationCheck] = []
        failure = self._run_checks(credential, checks)
        result = VerificationResult(
            verified=failure is None,
            checks=tuple(checks),
            credential=to_open_badge(credential),
            raw_credential=credential_to_dict(credential),
        )
        if failure is not None:
            logger.warning(
                "Credential %s failed %s: %s",
                credential.credential_id,
                failure.check,
                failure.message,
                extra={"credential_id": credential.credential_id},
            )
        return self._record("stored", result)

    def _run_checks(
        self, credential: Credential, checks: list[VerificationCheck]
    ) -> VerificationCheck | None:
        if credential.revoked:
            failed = VerificationCheck(
                "not_revoked",
                "error",
                credential.revocation_reason or DEFAULT_REVOCATION_MESSAGE,
            )
            checks.append(failed)
            return failed
        checks.append(VerificationCheck("not_revoked", "success"))

        now = self._clock()
        if credential.expiration_date is not None and credential.expiration_date < now:
            failed = VerificationCheck("not_expired", "error", "Credential has expired")
            checks.append(failed)
            return failed
        checks.append(VerificationCheck("not_expired", "success"))

        message = self._proof_error(credential, now)
        if message is not None:
            failed = VerificationCheck("proof", "error", message)
            checks.append(failed)
            return failed
        checks.append(VerificationCheck("proof", "success"))
        return None

    def _proof_error(self, credential: Credential, now: datetime) -> str | None:
        if not credential.proof:
            return "No proof found on credential"
        proof = credential.proof[0]

        message = check_proof_structure(proof_to_dict(proof), now, self._max_age_years)
        if message is not None:
            return message
        if not proof.is_signed:
            return "Proof is an unsigned placeholder (proofValue only)"
        if credential.issuer_id is None:
            return "Credential has no issuer to resolve a key for"

        match = _METHOD_RE.search(proof.verification_method)
        if match is None or int(match.group(1)) != credential.issuer_id:
            return "Verification method does not belong to the credential issuer"

        try:
            public_key = jwk_to_public_key(self._keys.resolve_public_key(credential.issuer_id))
        except (NotFoundError, ValidationError) as e:
            return f"Issuer key unavailable: {e}"

        payload = canonical_json(build_credential_payload(credential))
        if not verify_jws(proof.jws, payload, public_key):
            return "Signature verification failed"
        return None

    # -----------------------------------------------------------------------
    # External credentials
    # -----------------------------------------------------------------------

    def validate_external_credential(self, vc: Any) -> VerificationResult:
        if not isinstance(vc, Mapping):
            return self._record(
                "external",
                VerificationResult(
                    verified=False,
                    checks=(
                        VerificationCheck(
                            "format", "error", "Credential must be a JSON object"
                        ),
                    ),
                ),
            )

        message = validate_credential_format(vc)
        if message is not None:
            logger.warning("External credential rejected: %s", message)
            return self._record(
                "external",
                VerificationResult(
                    verified=False,
                    checks=(VerificationCheck("format", "error", message),),
                    credential=dict(vc),
                ),
            )

        checks = [VerificationCheck("format", "success")]

        issuer = vc["issuer"]
        issuer_uri = issuer["id"] if isinstance(issuer, Mapping) else issuer
        issuer_verified, profile = self._resolve_issuer(str(issuer_uri))
        checks.append(
            VerificationCheck("issuer", "success")
            if issuer_verified
            else VerificationCheck("issuer", "warning", "Issuer not verified")
        )

        checks.append(self._external_proof_check(vc, profile))
        checks.append(self._external_expiration_check(vc))

        verified = issuer_verified and all(c.result != "error" for c in checks)
        return self._record(
            "external",
            VerificationResult(verified=verified, checks=tuple(checks), credential=dict(vc)),
        )

    def _resolve_issuer(self, uri: str) -> tuple[bool, Profile | None]:
        """(verified, local profile). DIDs are trusted without resolution."""
        if uri.startswith("did:"):
            return True, self._store.profiles.get_by_did(uri)

        parsed = urlparse(uri)
        if parsed.scheme != "https":
            return False, None

        match = _PROFILE_PATH_RE.search(parsed.path)
        if match is not None:
            profile = self._store.profiles.get_by_id(int(match.group(1)))
            if profile is not None:
                return True, profile

        profile = self._store.profiles.get_by_url(uri)
        return profile is not None, profile

    def _external_proof_check(
        self, vc: Mapping[str, Any], issuer: Profile | None
    ) -> VerificationCheck:
        proof = _first_proof(vc.get("proof"))
        if proof is None:
            return VerificationCheck("proof", "warning", "No proof found on credential")

        message = check_proof_structure(proof, self._clock(), self._max_age_years)
        if message is not None:
            return VerificationCheck("proof", "error", message)

        if not proof.get("jws"):
            return VerificationCheck(
                "proof", "warning", "Proof carries no JWS; signature not checked"
            )
        if issuer is None or not issuer.public_keys:
            return VerificationCheck(
                "proof", "warning", "Issuer key not available; signature not checked"
            )

        try:
            public_key = jwk_to_public_key(self._keys.resolve_public_key(issuer.id))
        except (NotFoundError, ValidationError) as e:
            return VerificationCheck("proof", "warning", f"Issuer key unavailable: {e}")

        payload = canonical_json({k: v for k, v in vc.items() if k != "proof"})
        if not verify_jws(str(proof["jws"]), payload, public_key):
            return VerificationCheck("proof", "error", "Signature verification failed")
        return VerificationCheck("proof", "success")

    def _external_expiration_check(self, vc: Mapping[str, Any]) -> VerificationCheck:
        raw = vc.get("expirationDate") or vc.get("validUntil")
        if not raw:
            return VerificationCheck("expiration", "success")
        try:
            expires = parse_timestamp(raw)
        except (TypeError, ValueError):
            return VerificationCheck("expiration", "error", "Invalid expiration date")
        if expires < self._clock():
            return VerificationCheck("expiration", "error", "Credential has expired")
        return VerificationCheck("expiration", "success")

    @staticmethod
    def _record(source: str, result: VerificationResult) -> VerificationResult:
        CREDENTIAL_VERIFICATIONS.labels(
            source=source, result="verified" if result.verified else "failed"
        ).inc()
        return result
