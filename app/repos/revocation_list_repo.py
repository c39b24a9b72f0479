from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.models.revocation_list import RevocationList


class RevocationListRepo(Protocol):
    def get_by_id(self, list_id: int) -> RevocationList | None: ...
    def latest_for_issuer(self, issuer_id: int) -> RevocationList | None: ...
    def add(self, status_list: RevocationList) -> RevocationList: ...
    def update(self, status_list: RevocationList) -> RevocationList: ...


class InMemoryRevocationListRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, RevocationList] = {}
        self._next_id = 1

    def get_by_id(self, list_id: int) -> RevocationList | None:
        return self._by_id.get(list_id)

    def latest_for_issuer(self, issuer_id: int) -> RevocationList | None:
        lists = [sl for sl in self._by_id.values() if sl.issuer_id == issuer_id]
        if not lists:
            return None
        # Most recently updated wins; id breaks ties.
        return max(lists, key=lambda sl: (sl.last_updated, sl.id))

    def add(self, status_list: RevocationList) -> RevocationList:
        if status_list.id == 0:
            status_list = replace(status_list, id=self._next_id)
        self._by_id[status_list.id] = status_list
        self._next_id = max(self._next_id, status_list.id + 1)
        return status_list

    def update(self, status_list: RevocationList) -> RevocationList:
        if status_list.id not in self._by_id:
            raise KeyError("status list not found")
        self._by_id[status_list.id] = status_list
        return status_list

    def snapshot(self) -> tuple[dict[int, RevocationList], int]:
        return dict(self._by_id), self._next_id

    def restore(self, state: tuple[dict[int, RevocationList], int]) -> None:
        self._by_id, self._next_id = dict(state[0]), state[1]
