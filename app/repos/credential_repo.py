from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.models.credential import Credential


class CredentialRepo(Protocol):
    def get_by_id(self, pk: int) -> Credential | None: ...
    def get_by_credential_id(self, credential_id: str) -> Credential | None: ...
    def add(self, credential: Credential) -> Credential: ...
    def update(self, credential: Credential) -> Credential: ...


class InMemoryCredentialRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Credential] = {}
        self._by_credential_id: dict[str, Credential] = {}
        self._next_id = 1

    def get_by_id(self, pk: int) -> Credential | None:
        return self._by_id.get(pk)

    def get_by_credential_id(self, credential_id: str) -> Credential | None:
        return self._by_credential_id.get(credential_id)

    def add(self, credential: Credential) -> Credential:
        if credential.credential_id in self._by_credential_id:
            raise ValueError("credential_id already exists")
        if credential.id == 0:
            credential = replace(credential, id=self._next_id)
        if credential.id in self._by_id:
            raise ValueError("credential id already exists")
        self._by_id[credential.id] = credential
        self._by_credential_id[credential.credential_id] = credential
        self._next_id = max(self._next_id, credential.id + 1)
        return credential

    def update(self, credential: Credential) -> Credential:
        existing = self._by_id.get(credential.id)
        if existing is None:
            raise KeyError("credential not found")
        if existing.credential_id != credential.credential_id:
            raise ValueError("credential_id is immutable")
        self._by_id[credential.id] = credential
        self._by_credential_id[credential.credential_id] = credential
        return credential

    def snapshot(self) -> tuple[dict[int, Credential], int]:
        return dict(self._by_id), self._next_id

    def restore(self, state: tuple[dict[int, Credential], int]) -> None:
        self._by_id, self._next_id = dict(state[0]), state[1]
        self._by_credential_id = {c.credential_id: c for c in self._by_id.values()}


def find_by_identifier(repo: CredentialRepo, identifier: str | int) -> Credential | None:
    """Resolve a credential by primary key or by its ``urn:uuid`` id.

    A purely numeric identifier is tried as a primary key first; anything
    else (or a numeric miss) is matched against ``credential_id``.
    """
    if isinstance(identifier, int):
        return repo.get_by_id(identifier)

    identifier = identifier.strip()
    if identifier.isascii() and identifier.isdigit():
        found = repo.get_by_id(int(identifier))
        if found is not None:
            return found
    return repo.get_by_credential_id(identifier)
