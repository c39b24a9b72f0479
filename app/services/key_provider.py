"""Ed25519 signing key and per-issuer public key resolution.

One signing key per process, loaded lazily from the configured secret:
the base64 encoding of a PKCS8 private key, either PEM text or DER.
Issuers publish the matching public JWK on their profile, and verifiers
resolve it from there via the profile's ``/keys`` endpoint.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from jwt.algorithms import OKPAlgorithm

from app.core.errors import ConfigurationError, NotFoundError, ValidationError
from app.models.profile import Profile, PublicKeyDescriptor
from app.repos.profile_repo import ProfileRepo

logger = logging.getLogger(__name__)

ALGORITHM = "EdDSA"
KEY_TYPE = "Ed25519VerificationKey2020"


# ---------------------------------------------------------------------------
# Key material codecs
# ---------------------------------------------------------------------------


def decode_signing_key(secret: str | None) -> Ed25519PrivateKey:
    """Decode a base64 PKCS8 secret into an Ed25519 private key.

    Raises ConfigurationError when the secret is absent, not base64, not
    PKCS8, or not an Ed25519 key. The secret itself never appears in the
    error message.
    """
    if not secret:
        raise ConfigurationError("ED25519_PRIVATE_KEY_PKCS8 is not set")

    try:
        raw = base64.b64decode(secret.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise ConfigurationError("signing key is not valid base64") from None

    try:
        if raw.lstrip().startswith(b"-----BEGIN"):
            key = serialization.load_pem_private_key(raw, password=None)
        else:
            key = serialization.load_der_private_key(raw, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        raise ConfigurationError("signing key is not a PKCS8 private key") from None

    if not isinstance(key, Ed25519PrivateKey):
        raise ConfigurationError("signing key is not an Ed25519 key")
    return key


def encode_signing_key(key: Ed25519PrivateKey) -> str:
    """Inverse of decode_signing_key: base64 of the PKCS8 PEM text."""
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return base64.b64encode(pem).decode("ascii")


def public_key_to_jwk(public_key: Ed25519PublicKey) -> dict[str, Any]:
    jwk = OKPAlgorithm.to_jwk(public_key, as_dict=True)
    return {"kty": jwk["kty"], "crv": jwk["crv"], "x": jwk["x"]}


def jwk_to_public_key(jwk: Mapping[str, Any]) -> Ed25519PublicKey:
    try:
        key = jwt.PyJWK(dict(jwk), algorithm=ALGORITHM).key
    except (jwt.PyJWTError, ValueError, KeyError):
        raise ValidationError("public key is not a valid Ed25519 JWK") from None
    if not isinstance(key, Ed25519PublicKey):
        raise ValidationError("public key is not an Ed25519 key")
    return key


def jwk_thumbprint(jwk: Mapping[str, Any]) -> str:
    """RFC 7638 thumbprint of an OKP JWK (required members only)."""
    canonical = json.dumps(
        {"crv": jwk["crv"], "kty": jwk["kty"], "x": jwk["x"]},
        separators=(",", ":"),
        sort_keys=True,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class KeyProvider:
    """Process-wide signing key plus issuer public-key lookup."""

    def __init__(self, secret: str | None, profiles: ProfileRepo) -> None:
        self._secret = secret
        self._profiles = profiles
        self._signing_key: Ed25519PrivateKey | None = None

    def load_signing_key(self) -> Ed25519PrivateKey:
        if self._signing_key is None:
            self._signing_key = decode_signing_key(self._secret)
            logger.info("Ed25519 signing key loaded")
        return self._signing_key

    def public_jwk(self) -> dict[str, Any]:
        return public_key_to_jwk(self.load_signing_key().public_key())

    def register_issuer_key(self, issuer_id: int) -> Profile:
        """Publish the active key's JWK on the issuer profile (idempotent)."""
        issuer = self._profiles.get_by_id(issuer_id)
        if issuer is None:
            raise NotFoundError("Issuer not found")

        jwk = self.public_jwk()
        if any(dict(k.public_key_jwk) == jwk for k in issuer.public_keys):
            return issuer

        descriptor = PublicKeyDescriptor(id=jwk_thumbprint(jwk), public_key_jwk=jwk)
        updated = replace(issuer, public_keys=(*issuer.public_keys, descriptor))
        self._profiles.update(updated)
        logger.info(
            "Registered signing key for issuer=%d kid=%s",
            issuer_id,
            descriptor.id,
            extra={"issuer_id": issuer_id},
        )
        return updated

    def key_descriptor(self, issuer_id: int) -> PublicKeyDescriptor:
        """The issuer's current key; the most recently registered one wins."""
        issuer = self._profiles.get_by_id(issuer_id)
        if issuer is None:
            raise NotFoundError("Issuer not found")
        keys = [k for k in issuer.public_keys if k.public_key_jwk]
        if not keys:
            raise NotFoundError(f"Issuer {issuer_id} has no registered key")
        return keys[-1]

    def resolve_public_key(self, issuer_id: int) -> dict[str, Any]:
        return dict(self.key_descriptor(issuer_id).public_key_jwk)

    def jwks(self, issuer_id: int) -> dict[str, Any]:
        issuer = self._profiles.get_by_id(issuer_id)
        if issuer is None:
            raise NotFoundError("Issuer not found")
        return {
            "keys": [
                {**k.public_key_jwk, "kid": k.id, "use": "sig", "alg": ALGORITHM}
                for k in issuer.public_keys
                if k.public_key_jwk
            ]
        }
