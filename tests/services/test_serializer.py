from __future__ import annotations

from dataclasses import replace

import pytest

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.profile import Profile
from app.services.credential_builder import (
    build_credential,
    build_credential_payload,
    canonical_json,
)
from app.services.issuance_service import RecipientInput
from app.services.proof_signer import verify_jws
from app.services.serializer import (
    credential_to_dict,
    import_credential,
    serialize_credential,
)
from tests.conftest import BASE_URL, FIXED_NOW, create_achievement, create_issuer

JANE = RecipientInput(name="Jane", email="jane@example.com")


def _store_unsigned_credential(store, achievement, issuer):
    recipient = store.profiles.add(Profile.new(name="Jane", email="jane@example.com"))
    return store.credentials.add(
        build_credential(
            achievement=achievement,
            issuer=issuer,
            recipient=recipient,
            issued_at=FIXED_NOW,
            base_url=BASE_URL,
        )
    )


def _external_vc(**overrides):
    vc = {
        "@context": ["https://www.w3.org/ns/credentials/v2"],
        "id": "urn:uuid:5b1c8a0e-0b5e-4c43-9f55-2f7f1f3c2a10",
        "type": ["VerifiableCredential", "OpenBadgeCredential"],
        "issuer": {
            "id": "did:web:university.example",
            "type": ["Profile"],
            "name": "Example University",
            "url": "https://university.example",
        },
        "issuanceDate": "2024-06-01T12:00:00Z",
        "name": "Data Literacy",
        "credentialSubject": {
            "id": "mailto:Sam@Example.com",
            "type": ["AchievementSubject"],
            "achievement": {
                "id": "https://university.example/achievements/data-literacy",
                "type": ["Achievement"],
                "name": "Data Literacy",
                "description": "Reads and questions charts",
                "criteria": {"narrative": "Pass the final quiz"},
            },
        },
        "evidence": [
            {"id": "https://university.example/quiz/42", "type": ["Evidence"], "name": "Quiz"}
        ],
        "proof": [
            {
                "type": "Ed25519Signature2020",
                "created": "2024-06-01T12:00:01Z",
                "verificationMethod": "did:web:university.example#key-1",
                "proofPurpose": "assertionMethod",
                "proofValue": "z3FXQjecWufY46yg5abdVZsXqLhxhueuSoZgNSARiKBk",
            }
        ],
    }
    vc.update(overrides)
    return vc


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def test_export_carries_achievement_and_verifiable_jws(services, achievement, signing_key) -> None:
    issued = services.issuance.issue(achievement.id, JANE)

    document = serialize_credential(
        services.store, services.signer, issued.credential.credential_id
    )

    assert document["id"] == issued.credential.credential_id
    assert document["credentialSubject"]["achievement"]["name"] == "Welcome"
    assert document["issuer"]["id"] == f"{BASE_URL}/api/profiles/{achievement.creator_id}"

    jws = document["proof"][0]["jws"]
    unsigned = {k: v for k, v in document.items() if k != "proof"}
    assert verify_jws(jws, canonical_json(unsigned), signing_key.public_key())


def test_export_by_primary_key(services, achievement) -> None:
    issued = services.issuance.issue(achievement.id, JANE)
    by_pk = serialize_credential(services.store, services.signer, issued.credential.id)
    by_str_pk = serialize_credential(
        services.store, services.signer, str(issued.credential.id)
    )
    assert by_pk == by_str_pk == issued.open_badge


def test_export_is_a_snapshot_of_issuance(services, achievement) -> None:
    issued = services.issuance.issue(achievement.id, JANE)
    services.store.achievements.update(replace(achievement, name="Renamed"))

    document = serialize_credential(services.store, services.signer, issued.credential.id)

    assert document["credentialSubject"]["achievement"]["name"] == "Welcome"
    assert document == issued.open_badge


def test_export_signs_lazily_and_persists(services, issuer, achievement) -> None:
    stored = _store_unsigned_credential(services.store, achievement, issuer)
    assert stored.proof == ()

    document = serialize_credential(services.store, services.signer, stored.credential_id)

    assert "jws" in document["proof"][0]
    persisted = services.store.credentials.get_by_id(stored.id)
    assert len(persisted.proof) == 1
    assert persisted.proof[0].is_signed
    # A second export returns the same signature.
    again = serialize_credential(services.store, services.signer, stored.id)
    assert again["proof"] == document["proof"]


def test_export_without_key_does_not_persist_placeholder(unsigned_services) -> None:
    store = unsigned_services.store
    issuer = create_issuer(store)
    stored = _store_unsigned_credential(store, create_achievement(store, issuer), issuer)

    document = serialize_credential(store, unsigned_services.signer, stored.id)

    assert document["proof"][0]["proofValue"].startswith("z")
    assert "jws" not in document["proof"][0]
    assert store.credentials.get_by_id(stored.id).proof == ()


def test_export_unknown_credential(services) -> None:
    with pytest.raises(NotFoundError):
        serialize_credential(services.store, services.signer, "urn:uuid:missing")


def test_credential_to_dict_is_the_record_view(services, achievement) -> None:
    issued = services.issuance.issue(achievement.id, JANE)
    raw = credential_to_dict(issued.credential)

    assert raw["id"] == issued.credential.id
    assert raw["credentialId"] == issued.credential.credential_id
    assert raw["issuanceDate"] == "2025-03-14T09:26:53.589Z"
    assert raw["expirationDate"] is None
    assert raw["revoked"] is False
    assert raw["achievementId"] == achievement.id
    assert raw["issuerId"] == achievement.creator_id
    assert raw["proof"][0]["proofPurpose"] == "assertionMethod"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def test_import_creates_issuer_achievement_and_recipient(services) -> None:
    store = services.store
    credential = import_credential(store, _external_vc(), clock=services.clock)

    assert credential.revoked is False
    assert credential.name == "Data Literacy"
    assert credential.issuance_date.year == 2024

    issuer = store.profiles.get_by_did("did:web:university.example")
    assert issuer.profile_type == "Issuer"
    assert issuer.name == "Example University"
    assert credential.issuer_id == issuer.id

    achievement = store.achievements.get_by_id(credential.achievement_id)
    assert achievement.achievement_id == "https://university.example/achievements/data-literacy"
    assert achievement.criteria.narrative == "Pass the final quiz"

    recipient = store.profiles.get_by_email("sam@example.com")
    assert recipient.received_credential_ids == (credential.id,)

    evidence = store.evidence.list_by_credential(credential.id)
    assert [e.url for e in evidence] == ["https://university.example/quiz/42"]

    assert credential.proof[0].proof_value.startswith("z3FX")
    assert not credential.proof[0].is_signed


def test_import_reuses_known_entities(services) -> None:
    store = services.store
    first = import_credential(store, _external_vc())
    second = import_credential(
        store, _external_vc(id="urn:uuid:0c9d8e7f-1111-4222-8333-944455556666")
    )

    assert first.issuer_id == second.issuer_id
    assert first.achievement_id == second.achievement_id
    assert first.recipient_id == second.recipient_id
    recipient = store.profiles.get_by_id(first.recipient_id)
    assert recipient.received_credential_ids == (first.id, second.id)


def test_import_ignores_revocation_fields_on_input(services) -> None:
    credential = import_credential(services.store, _external_vc(revoked=True))
    assert credential.revoked is False


def test_import_export_keeps_identity_and_content(services) -> None:
    vc = _external_vc(validUntil="2030-01-01T00:00:00Z")
    credential = import_credential(services.store, vc)

    document = serialize_credential(services.store, services.signer, credential.id)

    assert document["id"] == vc["id"]
    assert document["issuer"] == vc["issuer"]
    assert document["credentialSubject"] == vc["credentialSubject"]
    assert document["evidence"] == vc["evidence"]
    assert document["expirationDate"] == "2030-01-01T00:00:00.000Z"


def test_import_duplicate_is_a_conflict_and_writes_nothing(services) -> None:
    store = services.store
    import_credential(store, _external_vc())
    profiles_before = store.profiles.snapshot()

    with pytest.raises(ConflictError):
        import_credential(
            store,
            _external_vc(
                issuer={"id": "did:web:other.example", "name": "Other"},
            ),
        )

    assert store.profiles.snapshot() == profiles_before
    assert store.profiles.get_by_did("did:web:other.example") is None


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"type": ["VerifiableCredential"]}, "Not a valid Open Badge Credential"),
        ({"id": ""}, "Credential id is required"),
        ({"credentialSubject": "mailto:sam@example.com"}, "credentialSubject"),
        ({"issuanceDate": "last tuesday"}, "issuanceDate"),
        ({"proof": ["abc"]}, "Proof must be an object"),
    ],
)
def test_import_rejects_malformed_input(services, overrides, message) -> None:
    with pytest.raises(ValidationError, match=message):
        import_credential(services.store, _external_vc(**overrides))
    assert services.store.credentials.get_by_id(1) is None


def test_import_invalid_proof_rolls_back(services) -> None:
    bad_proof = [{"type": "Ed25519Signature2020", "proofPurpose": "assertionMethod"}]
    with pytest.raises(ValidationError, match="Proof is missing"):
        import_credential(services.store, _external_vc(proof=bad_proof))
    assert services.store.profiles.get_by_did("did:web:university.example") is None


def test_import_accepts_did_subject(services) -> None:
    subject = dict(_external_vc()["credentialSubject"], id="did:key:z6MkSam")
    credential = import_credential(services.store, _external_vc(credentialSubject=subject))
    recipient = services.store.profiles.get_by_id(credential.recipient_id)
    assert recipient.did == "did:key:z6MkSam"


def test_imported_payload_matches_input_document(services) -> None:
    vc = _external_vc()
    credential = import_credential(services.store, vc)
    payload = build_credential_payload(credential)
    assert payload["name"] == vc["name"]
    assert payload["issuanceDate"] == "2024-06-01T12:00:00.000Z"
