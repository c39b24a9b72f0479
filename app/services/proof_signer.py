"""Proof generation and JWS verification (EdDSA over Ed25519).

The stored ``jws`` is a compact JWS with protected header {"alg":"EdDSA"}
over the canonical credential bytes, kept in detached form
(``<header>..<signature>``). The credential document itself carries the
payload, so the verifier re-attaches the canonical bytes it recomputes.

Signing never raises. When the key cannot be loaded the signer returns an
Unsigned outcome whose proof carries a random ``proofValue`` and no
``jws``. Callers branch on the outcome type; the verifier rejects such
proofs.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from app.core.clock import Clock, utc_now
from app.core.errors import CredentialServiceError
from app.models.credential import PROOF_PURPOSE, PROOF_TYPE, Proof
from app.services.credential_builder import canonical_json, verification_method_uri
from app.services.key_provider import ALGORITHM, KeyProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Signed:
    proof: Proof


@dataclass(frozen=True, slots=True)
class Unsigned:
    """Placeholder proof; not a signature. ``reason`` says why signing failed."""

    proof: Proof
    reason: str


SigningOutcome = Signed | Unsigned


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def sign_detached(payload: bytes, key: Ed25519PrivateKey) -> str:
    token = jwt.api_jws.encode(
        payload,
        key,
        algorithm=ALGORITHM,
        headers={"typ": None},  # protected header is exactly {"alg":"EdDSA"}
    )
    header, _, signature = token.split(".")
    return f"{header}..{signature}"


def verify_jws(jws: str, payload: bytes, public_key: Ed25519PublicKey) -> bool:
    """True iff ``jws`` is a valid EdDSA signature over ``payload``.

    Accepts the detached form, or an attached compact JWS whose payload
    segment encodes exactly ``payload``.
    """
    parts = jws.split(".")
    if len(parts) != 3:
        return False
    header, body, signature = parts
    expected = _b64url(payload)
    if body and body != expected:
        return False

    try:
        jwt.api_jws.decode_complete(
            f"{header}.{expected}.{signature}",
            key=public_key,
            algorithms=[ALGORITHM],
        )
    except jwt.PyJWTError as e:
        logger.debug("JWS rejected: %s", e)
        return False
    return True


class ProofSigner:
    def __init__(
        self, keys: KeyProvider, base_url: str, clock: Clock = utc_now
    ) -> None:
        self._keys = keys
        self._base_url = base_url
        self._clock = clock

    def sign(self, payload: Mapping[str, Any], issuer_id: int) -> SigningOutcome:
        """Sign ``payload`` (any ``proof`` member is ignored) for ``issuer_id``.

        Loading the key also publishes its JWK on the issuer profile so the
        proof's verificationMethod resolves to it.
        """
        unsigned_payload = {k: v for k, v in payload.items() if k != "proof"}
        created = self._clock()
        method = verification_method_uri(self._base_url, issuer_id)

        try:
            key = self._keys.load_signing_key()
            self._keys.register_issuer_key(issuer_id)
            jws = sign_detached(canonical_json(unsigned_payload), key)
        except CredentialServiceError as exc:
            logger.error(
                "Signing failed for issuer=%d, issuing unsigned placeholder proof: %s",
                issuer_id,
                exc,
                extra={"issuer_id": issuer_id},
            )
            return self._placeholder(created, method, str(exc))
        except Exception as exc:
            logger.exception(
                "Unexpected signing error for issuer=%d, issuing unsigned placeholder proof",
                issuer_id,
                extra={"issuer_id": issuer_id},
            )
            return self._placeholder(created, method, f"signing error: {exc}")

        return Signed(
            proof=Proof(
                type=PROOF_TYPE,
                created=created,
                verification_method=method,
                proof_purpose=PROOF_PURPOSE,
                jws=jws,
            )
        )

    @staticmethod
    def _placeholder(created, method: str, reason: str) -> Unsigned:
        return Unsigned(
            proof=Proof(
                type=PROOF_TYPE,
                created=created,
                verification_method=method,
                proof_purpose=PROOF_PURPOSE,
                proof_value="z" + uuid4().hex,
            ),
            reason=reason,
        )
