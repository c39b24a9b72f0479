from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.models.credential import Evidence


class EvidenceRepo(Protocol):
    def add(self, evidence: Evidence) -> Evidence: ...
    def list_by_credential(self, credential_id: int) -> list[Evidence]: ...


class InMemoryEvidenceRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Evidence] = {}
        self._next_id = 1

    def add(self, evidence: Evidence) -> Evidence:
        if evidence.id == 0:
            evidence = replace(evidence, id=self._next_id)
        self._by_id[evidence.id] = evidence
        self._next_id = max(self._next_id, evidence.id + 1)
        return evidence

    def list_by_credential(self, credential_id: int) -> list[Evidence]:
        return [e for e in self._by_id.values() if e.credential_id == credential_id]

    def snapshot(self) -> tuple[dict[int, Evidence], int]:
        return dict(self._by_id), self._next_id

    def restore(self, state: tuple[dict[int, Evidence], int]) -> None:
        self._by_id, self._next_id = dict(state[0]), state[1]
