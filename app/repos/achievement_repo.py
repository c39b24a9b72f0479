from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.models.achievement import Achievement


class AchievementRepo(Protocol):
    def get_by_id(self, achievement_id: int) -> Achievement | None: ...
    def get_by_achievement_id(self, external_id: str) -> Achievement | None: ...
    def add(self, achievement: Achievement) -> Achievement: ...
    def update(self, achievement: Achievement) -> Achievement: ...


class InMemoryAchievementRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Achievement] = {}
        self._next_id = 1

    def get_by_id(self, achievement_id: int) -> Achievement | None:
        return self._by_id.get(achievement_id)

    def get_by_achievement_id(self, external_id: str) -> Achievement | None:
        return next(
            (a for a in self._by_id.values() if a.achievement_id == external_id),
            None,
        )

    def add(self, achievement: Achievement) -> Achievement:
        if achievement.id == 0:
            achievement = replace(achievement, id=self._next_id)
        if achievement.id in self._by_id:
            raise ValueError("achievement id already exists")
        self._by_id[achievement.id] = achievement
        self._next_id = max(self._next_id, achievement.id + 1)
        return achievement

    def update(self, achievement: Achievement) -> Achievement:
        if achievement.id not in self._by_id:
            raise KeyError("achievement not found")
        self._by_id[achievement.id] = achievement
        return achievement

    def snapshot(self) -> tuple[dict[int, Achievement], int]:
        return dict(self._by_id), self._next_id

    def restore(self, state: tuple[dict[int, Achievement], int]) -> None:
        self._by_id, self._next_id = dict(state[0]), state[1]
