from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.models.credential import Credential
from app.models.profile import Profile
from app.repos.credential_repo import InMemoryCredentialRepo, find_by_identifier
from app.repos.store import InMemoryStore

NOW = datetime(2025, 1, 1, tzinfo=UTC)


def _credential(credential_id: str = "urn:uuid:00000000-0000-4000-8000-000000000001") -> Credential:
    return Credential(
        id=0,
        credential_id=credential_id,
        name="Welcome",
        description="Completed onboarding",
        issuance_date=NOW,
        issuer_snapshot={"id": "https://issuer.example"},
        subject_snapshot={"type": ["AchievementSubject"]},
    )


def test_add_assigns_sequential_ids() -> None:
    store = InMemoryStore()
    a = store.profiles.add(Profile.new(name="A"))
    b = store.profiles.add(Profile.new(name="B"))
    assert (a.id, b.id) == (1, 2)


def test_credential_repo_rejects_duplicate_credential_id() -> None:
    repo = InMemoryCredentialRepo()
    repo.add(_credential())
    with pytest.raises(ValueError, match="credential_id already exists"):
        repo.add(_credential())


def test_find_by_identifier_numeric_then_urn() -> None:
    repo = InMemoryCredentialRepo()
    stored = repo.add(_credential())
    assert find_by_identifier(repo, "1") == stored
    assert find_by_identifier(repo, 1) == stored
    assert find_by_identifier(repo, stored.credential_id) == stored
    assert find_by_identifier(repo, "2") is None
    assert find_by_identifier(repo, "urn:uuid:missing") is None


def test_transaction_rolls_back_every_repo_on_error() -> None:
    store = InMemoryStore()
    store.profiles.add(Profile.new(name="Existing"))

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.profiles.add(Profile.new(name="Ghost", email="ghost@example.com"))
            store.credentials.add(_credential())
            raise RuntimeError("boom")

    assert store.profiles.get_by_email("ghost@example.com") is None
    assert store.credentials.get_by_id(1) is None
    assert store.credentials.get_by_credential_id(_credential().credential_id) is None
    # The id counter is restored too.
    assert store.profiles.add(Profile.new(name="Next")).id == 2


def test_nested_transaction_joins_outer() -> None:
    store = InMemoryStore()

    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.profiles.add(Profile.new(name="Inner"))
            raise RuntimeError("outer fails after inner succeeded")

    assert store.profiles.get_by_id(1) is None


def test_committed_transaction_keeps_writes() -> None:
    store = InMemoryStore()
    with store.transaction():
        store.profiles.add(Profile.new(name="Kept"))
    assert store.profiles.get_by_id(1).name == "Kept"


def test_reset_clears_all_records() -> None:
    store = InMemoryStore()
    store.profiles.add(Profile.new(name="A"))
    store.credentials.add(_credential())
    store.reset()
    assert store.profiles.get_by_id(1) is None
    assert store.credentials.get_by_credential_id(_credential().credential_id) is None
