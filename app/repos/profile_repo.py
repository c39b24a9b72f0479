from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.models.profile import Profile


class ProfileRepo(Protocol):
    def get_by_id(self, profile_id: int) -> Profile | None: ...
    def get_by_email(self, email: str) -> Profile | None: ...
    def get_by_did(self, did: str) -> Profile | None: ...
    def get_by_url(self, url: str) -> Profile | None: ...
    def add(self, profile: Profile) -> Profile: ...
    def update(self, profile: Profile) -> Profile: ...


class InMemoryProfileRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Profile] = {}
        self._next_id = 1

    def get_by_id(self, profile_id: int) -> Profile | None:
        return self._by_id.get(profile_id)

    def get_by_email(self, email: str) -> Profile | None:
        # Exact match; callers normalize.
        return next((p for p in self._by_id.values() if p.email == email), None)

    def get_by_did(self, did: str) -> Profile | None:
        return next((p for p in self._by_id.values() if p.did == did), None)

    def get_by_url(self, url: str) -> Profile | None:
        return next((p for p in self._by_id.values() if p.url == url), None)

    def add(self, profile: Profile) -> Profile:
        if profile.id == 0:
            profile = replace(profile, id=self._next_id)
        if profile.id in self._by_id:
            raise ValueError("profile id already exists")
        self._by_id[profile.id] = profile
        self._next_id = max(self._next_id, profile.id + 1)
        return profile

    def update(self, profile: Profile) -> Profile:
        if profile.id not in self._by_id:
            raise KeyError("profile not found")
        self._by_id[profile.id] = profile
        return profile

    def snapshot(self) -> tuple[dict[int, Profile], int]:
        return dict(self._by_id), self._next_id

    def restore(self, state: tuple[dict[int, Profile], int]) -> None:
        self._by_id, self._next_id = dict(state[0]), state[1]
