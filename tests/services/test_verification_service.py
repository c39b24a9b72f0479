from __future__ import annotations

import copy
from dataclasses import replace
from datetime import timedelta

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from app.api.dependencies import build_services
from app.models.credential import Proof
from app.services.credential_builder import build_credential_payload, canonical_json
from app.services.issuance_service import RecipientInput
from app.services.proof_signer import sign_detached
from app.services.serializer import to_open_badge
from tests.conftest import (
    BASE_URL,
    FIXED_NOW,
    create_achievement,
    create_issuer,
    make_settings,
)

JANE = RecipientInput(name="Jane", email="jane@example.com")


def _checks(result) -> list[tuple[str, str]]:
    return [(c.check, c.result) for c in result.checks]


@pytest.fixture
def issued(services, achievement):
    return services.issuance.issue(achievement.id, JANE).credential


# ---------------------------------------------------------------------------
# Stored credentials
# ---------------------------------------------------------------------------


def test_fresh_credential_verifies(services, issued) -> None:
    result = services.verifier.verify_credential(issued.credential_id)

    assert result.verified is True
    assert _checks(result) == [
        ("not_revoked", "success"),
        ("not_expired", "success"),
        ("proof", "success"),
    ]
    assert result.credential["id"] == issued.credential_id
    assert result.raw_credential["credentialId"] == issued.credential_id


def test_lookup_by_numeric_id(services, issued) -> None:
    assert services.verifier.verify_credential(str(issued.id)).verified is True


def test_unknown_credential_yields_existence_error(services) -> None:
    result = services.verifier.verify_credential("urn:uuid:does-not-exist")

    assert result.verified is False
    assert _checks(result) == [("existence", "error")]
    assert result.checks[0].message == "Credential not found"
    assert result.credential is None


def test_revoked_credential_stops_at_first_check(services, issued) -> None:
    services.store.credentials.update(
        replace(issued, revoked=True, revocation_reason="Issued in error")
    )

    result = services.verifier.verify_credential(issued.credential_id)

    assert result.verified is False
    assert _checks(result) == [("not_revoked", "error")]
    assert result.checks[0].message == "Issued in error"


def test_revoked_without_reason_has_default_message(services, issued) -> None:
    services.store.credentials.update(replace(issued, revoked=True))
    result = services.verifier.verify_credential(issued.id)
    assert result.checks[0].message == "Credential has been revoked"


@pytest.mark.parametrize(
    ("offset", "verified"),
    [
        (timedelta(milliseconds=1), True),
        (timedelta(0), True),
        (timedelta(milliseconds=-1), False),
    ],
)
def test_expiration_boundary_is_strict(services, achievement, clock, offset, verified) -> None:
    credential = services.issuance.issue(
        achievement.id, JANE, expiration_date=FIXED_NOW + offset
    ).credential

    result = services.verifier.verify_credential(credential.credential_id)

    assert result.verified is verified
    if verified:
        assert len(result.checks) == 3
    else:
        assert _checks(result) == [("not_revoked", "success"), ("not_expired", "error")]


def test_credential_expires_as_clock_moves(services, achievement, clock) -> None:
    credential = services.issuance.issue(
        achievement.id, JANE, expiration_date=FIXED_NOW + timedelta(days=30)
    ).credential
    assert services.verifier.verify_credential(credential.id).verified is True

    clock.advance(days=31)
    result = services.verifier.verify_credential(credential.id)
    assert result.failed_check.check == "not_expired"


@pytest.mark.parametrize(
    "mutation",
    [
        lambda c: replace(c, name="Welcome (Honours)"),
        lambda c: replace(c, description="Something else"),
        lambda c: replace(c, issuance_date=c.issuance_date - timedelta(days=1)),
        lambda c: replace(c, expiration_date=c.issuance_date + timedelta(days=3650)),
        lambda c: replace(
            c,
            subject_snapshot={
                **c.subject_snapshot,
                "id": "mailto:mallory@example.com",
            },
        ),
        lambda c: replace(
            c,
            issuer_snapshot={**c.issuer_snapshot, "name": "Totally Legit University"},
        ),
        lambda c: replace(c, type=(*c.type, "ExtraType")),
        lambda c: replace(c, evidence_snapshot=({"type": ["Evidence"], "name": "x"},)),
    ],
)
def test_any_mutation_of_signed_content_fails_signature(services, issued, mutation) -> None:
    services.store.credentials.update(mutation(issued))

    result = services.verifier.verify_credential(issued.credential_id)

    assert result.verified is False
    assert _checks(result)[-1] == ("proof", "error")
    assert result.checks[-1].message == "Signature verification failed"
    assert len(result.checks) == 3


def test_credential_without_proof(services, issued) -> None:
    services.store.credentials.update(replace(issued, proof=()))
    result = services.verifier.verify_credential(issued.id)
    assert result.checks[-1].message == "No proof found on credential"


def test_unsigned_placeholder_is_rejected(unsigned_services) -> None:
    store = unsigned_services.store
    achievement = create_achievement(store, create_issuer(store))
    credential = unsigned_services.issuance.issue(achievement.id, JANE).credential

    result = unsigned_services.verifier.verify_credential(credential.id)

    assert result.verified is False
    assert _checks(result)[-1] == ("proof", "error")
    assert "unsigned placeholder" in result.checks[-1].message


@pytest.mark.parametrize(
    ("change", "message"),
    [
        ({"proof_purpose": "capabilityInvocation"}, "Invalid proof purpose"),
        ({"verification_method": ""}, "missing required fields"),
        ({"jws": None, "proof_value": None}, "neither proofValue nor jws"),
    ],
)
def test_malformed_proof_structure(services, issued, change, message) -> None:
    services.store.credentials.update(replace(issued, proof=(replace(issued.proof[0], **change),)))
    result = services.verifier.verify_credential(issued.id)
    assert message in result.checks[-1].message


def test_stale_proof_is_rejected(services, issued, clock) -> None:
    clock.advance(days=366 * 10 + 1)
    result = services.verifier.verify_credential(issued.id)
    assert result.checks[-1].message == "Proof exceeds the 10-year age limit"


def test_staleness_bound_is_configurable(signing_secret, clock) -> None:
    short = build_services(make_settings(signing_secret, proof_max_age_years=1), clock=clock)
    achievement = create_achievement(short.store, create_issuer(short.store))
    credential = short.issuance.issue(achievement.id, JANE).credential

    clock.advance(days=400)
    result = short.verifier.verify_credential(credential.id)
    assert result.checks[-1].message == "Proof exceeds the 1-year age limit"


def test_verification_method_must_name_the_issuer(services, issued) -> None:
    other = create_issuer(services.store, name="Other Org")
    services.keys.register_issuer_key(other.id)
    forged = replace(
        issued.proof[0],
        verification_method=f"{BASE_URL}/api/profiles/{other.id}/keys",
    )
    services.store.credentials.update(replace(issued, proof=(forged,)))

    result = services.verifier.verify_credential(issued.id)

    assert "does not belong to the credential issuer" in result.checks[-1].message


def test_signature_from_another_key_fails(services, issued) -> None:
    rogue = sign_detached(
        canonical_json(build_credential_payload(issued)), Ed25519PrivateKey.generate()
    )
    services.store.credentials.update(
        replace(issued, proof=(replace(issued.proof[0], jws=rogue),))
    )

    result = services.verifier.verify_credential(issued.id)
    assert result.checks[-1].message == "Signature verification failed"


# ---------------------------------------------------------------------------
# External credentials
# ---------------------------------------------------------------------------


def test_exported_credential_validates_externally(services, issued) -> None:
    vc = to_open_badge(services.store.credentials.get_by_id(issued.id))

    result = services.verifier.validate_external_credential(vc)

    assert result.verified is True
    assert _checks(result) == [
        ("format", "success"),
        ("issuer", "success"),
        ("proof", "success"),
        ("expiration", "success"),
    ]


def test_external_tampering_is_detected(services, issued) -> None:
    vc = to_open_badge(issued)
    vc["credentialSubject"]["achievement"]["name"] = "Grand Master"

    result = services.verifier.validate_external_credential(vc)

    assert result.verified is False
    assert ("proof", "error") in _checks(result)


@pytest.mark.parametrize(
    ("mutate", "message"),
    [
        (lambda vc: vc.pop("id"), "Missing required field: id"),
        (lambda vc: vc.update(type=["VerifiableCredential"]), "OpenBadgeCredential"),
        (lambda vc: vc.pop("issuer"), "Missing required field: issuer"),
        (lambda vc: vc.update(issuer={"name": "No id"}), "Issuer object must have an id"),
        (lambda vc: vc.pop("credentialSubject"), "credentialSubject"),
        (
            lambda vc: (vc.pop("issuanceDate"), vc.pop("validFrom")),
            "Missing required field: issuanceDate",
        ),
    ],
)
def test_external_format_errors_short_circuit(services, issued, mutate, message) -> None:
    vc = copy.deepcopy(to_open_badge(issued))
    mutate(vc)

    result = services.verifier.validate_external_credential(vc)

    assert result.verified is False
    assert _checks(result) == [("format", "error")]
    assert message in result.checks[0].message


def test_external_valid_from_is_accepted_for_issuance_date(services, issued) -> None:
    vc = to_open_badge(issued)
    vc.pop("issuanceDate")
    result = services.verifier.validate_external_credential(vc)
    assert result.checks[0].result == "success"


def test_external_non_object_is_a_format_error(services) -> None:
    result = services.verifier.validate_external_credential(["not", "an", "object"])
    assert _checks(result) == [("format", "error")]


def _foreign_vc(issuer) -> dict:
    return {
        "@context": ["https://www.w3.org/ns/credentials/v2"],
        "id": "urn:uuid:5f2a0f8e-93a3-4b7e-9a54-2d7f3d3a0c11",
        "type": ["VerifiableCredential", "OpenBadgeCredential"],
        "issuer": issuer,
        "issuanceDate": "2024-06-01T00:00:00Z",
        "credentialSubject": {"type": ["AchievementSubject"], "achievement": {"name": "X"}},
    }


def test_did_issuer_is_trusted_without_proof(services) -> None:
    result = services.verifier.validate_external_credential(_foreign_vc("did:web:example.org"))

    assert result.verified is True
    assert _checks(result) == [
        ("format", "success"),
        ("issuer", "success"),
        ("proof", "warning"),
        ("expiration", "success"),
    ]


def test_unknown_https_issuer_is_not_verified(services) -> None:
    result = services.verifier.validate_external_credential(
        _foreign_vc({"id": "https://elsewhere.example/profiles/77", "name": "Elsewhere"})
    )

    assert result.verified is False
    assert ("issuer", "warning") in _checks(result)
    assert result.failed_check is None


def test_https_issuer_matched_by_profile_id_in_path(services, issuer) -> None:
    vc = _foreign_vc(f"https://mirror.example/api/profiles/{issuer.id}")
    result = services.verifier.validate_external_credential(vc)
    assert ("issuer", "success") in _checks(result)


def test_external_expired_credential(services) -> None:
    vc = _foreign_vc("did:web:example.org")
    vc["expirationDate"] = (FIXED_NOW - timedelta(seconds=1)).isoformat()

    result = services.verifier.validate_external_credential(vc)

    assert result.verified is False
    assert _checks(result)[-1] == ("expiration", "error")


def test_external_unparseable_expiration(services) -> None:
    vc = _foreign_vc("did:web:example.org")
    vc["validUntil"] = "someday"
    result = services.verifier.validate_external_credential(vc)
    assert result.checks[-1].message == "Invalid expiration date"


def test_external_proof_with_bad_purpose_is_an_error(services) -> None:
    vc = _foreign_vc("did:web:example.org")
    vc["proof"] = {
        "type": "Ed25519Signature2020",
        "created": "2024-06-01T00:00:00Z",
        "verificationMethod": "did:web:example.org#key-1",
        "proofPurpose": "capabilityDelegation",
        "proofValue": "z3FXQjecWufY46",
    }
    result = services.verifier.validate_external_credential(vc)
    assert ("proof", "error") in _checks(result)
    assert result.verified is False


@pytest.mark.parametrize(
    "member, value",
    [
        ("proofPurpose", ["assertionMethod"]),
        ("type", {"name": "Ed25519Signature2020"}),
        ("verificationMethod", 42),
        ("created", 1717200000),
        ("jws", ["a", "b"]),
        ("proofValue", {"z": 1}),
    ],
)
def test_external_proof_with_non_string_member_is_an_error(services, member, value) -> None:
    vc = _foreign_vc("did:web:example.org")
    vc["proof"] = {
        "type": "Ed25519Signature2020",
        "created": "2024-06-01T00:00:00Z",
        "verificationMethod": "did:web:example.org#key-1",
        "proofPurpose": "assertionMethod",
        "jws": "a..b",
        member: value,
    }

    result = services.verifier.validate_external_credential(vc)

    assert result.verified is False
    proof = next(c for c in result.checks if c.check == "proof")
    assert proof.result == "error"
    assert proof.message == f"Proof fields must be strings: {member}"


def test_plain_http_issuer_is_not_verified(services, issuer) -> None:
    vc = _foreign_vc(f"http://mirror.example/api/profiles/{issuer.id}")
    result = services.verifier.validate_external_credential(vc)
    assert ("issuer", "warning") in _checks(result)
    assert result.verified is False


@pytest.mark.parametrize("identifier", ["²", "٣", "１"])
def test_non_ascii_digit_identifier_is_unknown(services, issued, identifier) -> None:
    result = services.verifier.verify_credential(identifier)
    assert _checks(result) == [("existence", "error")]


def test_verdict_serializes_to_wire_shape(services, issued) -> None:
    body = services.verifier.verify_credential(issued.id).to_dict()
    assert set(body) == {"verified", "checks", "credential", "rawCredential"}
    assert body["checks"][0] == {"check": "not_revoked", "result": "success"}


def test_proof_value_only_proof_is_never_signed() -> None:
    proof = Proof(
        type="Ed25519Signature2020",
        created=FIXED_NOW,
        verification_method=f"{BASE_URL}/api/profiles/1/keys",
        proof_value="zabc",
    )
    assert proof.is_signed is False
