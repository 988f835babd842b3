"""Durable store interface.

The dispatcher only ever sees one identity's partition at a time: a small
key-value space supporting get, put and delete-all. Backends implement the
identity-qualified primitives below.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

# JSON-compatible value stored under a key
StoredValue = dict[str, Any]


class DurableStore(ABC):
    """Per-identity key-value persistence shared by all dispatchers.

    Every method is partitioned by identity; no operation spans identities
    except ``identities()``, which recovery uses to enumerate live records.
    """

    async def initialize(self) -> None:
        """Open connections and create backing structures."""

    async def close(self) -> None:
        """Release connections."""

    async def __aenter__(self) -> DurableStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def partition(self, identity: str) -> Partition:
        """Get the key-value view scoped to one identity."""
        return Partition(self, identity)

    @abstractmethod
    async def get(self, identity: str, key: str) -> StoredValue | None:
        """Read a value, or None when absent."""
        ...

    @abstractmethod
    async def put(self, identity: str, key: str, value: StoredValue) -> None:
        """Write a value, replacing any previous one."""
        ...

    @abstractmethod
    async def delete_all(self, identity: str) -> None:
        """Delete every key in the identity's partition."""
        ...

    @abstractmethod
    def identities(self) -> AsyncIterator[str]:
        """Iterate over identities that have at least one stored key."""
        ...


class Partition:
    """Key-value view of a DurableStore bound to a single identity."""

    def __init__(self, store: DurableStore, identity: str) -> None:
        self._store = store
        self.identity = identity

    async def get(self, key: str) -> StoredValue | None:
        return await self._store.get(self.identity, key)

    async def put(self, key: str, value: StoredValue) -> None:
        await self._store.put(self.identity, key, value)

    async def delete_all(self) -> None:
        await self._store.delete_all(self.identity)
