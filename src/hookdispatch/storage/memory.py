"""In-memory durable store.

Not durable across restarts; intended for development and tests.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator

from .base import DurableStore, StoredValue


class MemoryStore(DurableStore):
    """Dict-backed store. Values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, StoredValue]] = {}

    async def get(self, identity: str, key: str) -> StoredValue | None:
        value = self._data.get(identity, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, identity: str, key: str, value: StoredValue) -> None:
        self._data.setdefault(identity, {})[key] = copy.deepcopy(value)

    async def delete_all(self, identity: str) -> None:
        self._data.pop(identity, None)

    async def identities(self) -> AsyncIterator[str]:
        for identity in list(self._data):
            yield identity

    def __len__(self) -> int:
        return len(self._data)
