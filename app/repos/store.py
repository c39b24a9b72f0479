"""Unit of work over the entity repos.

Issuance and import touch several repos in sequence (recipient profile,
credential, profile link, evidence rows, issuer key). ``transaction()``
makes that sequence all-or-nothing: on any exception every repo is put
back to the state it had when the outermost transaction began.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from app.repos.achievement_repo import AchievementRepo, InMemoryAchievementRepo
from app.repos.credential_repo import CredentialRepo, InMemoryCredentialRepo
from app.repos.evidence_repo import EvidenceRepo, InMemoryEvidenceRepo
from app.repos.profile_repo import InMemoryProfileRepo, ProfileRepo
from app.repos.revocation_list_repo import (
    InMemoryRevocationListRepo,
    RevocationListRepo,
)

logger = logging.getLogger(__name__)


class Store(Protocol):
    profiles: ProfileRepo
    achievements: AchievementRepo
    credentials: CredentialRepo
    evidence: EvidenceRepo
    revocation_lists: RevocationListRepo

    def transaction(self) -> Any: ...


class InMemoryStore:
    def __init__(self) -> None:
        self.profiles = InMemoryProfileRepo()
        self.achievements = InMemoryAchievementRepo()
        self.credentials = InMemoryCredentialRepo()
        self.evidence = InMemoryEvidenceRepo()
        self.revocation_lists = InMemoryRevocationListRepo()
        self._depth = 0

    def _repos(self) -> dict[str, Any]:
        return {
            "profiles": self.profiles,
            "achievements": self.achievements,
            "credentials": self.credentials,
            "evidence": self.evidence,
            "revocation_lists": self.revocation_lists,
        }

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStore]:
        if self._depth > 0:
            # Nested: join the outer transaction.
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        saved = {name: repo.snapshot() for name, repo in self._repos().items()}
        self._depth = 1
        try:
            yield self
        except BaseException:
            for name, repo in self._repos().items():
                repo.restore(saved[name])
            logger.warning("Transaction rolled back")
            raise
        finally:
            self._depth = 0

    def reset(self) -> None:
        """Drop all data (tests and local dev only)."""
        for repo in self._repos().values():
            repo.restore(({}, 1))
