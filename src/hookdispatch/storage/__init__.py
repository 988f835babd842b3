"""Durable storage backends for hookdispatch.

Example:
    ```python
    from hookdispatch.storage import get_store

    async with get_store(settings) as store:
        partition = store.partition(webhook_id)
        await partition.put("state", state.to_json())
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import DurableStore, Partition, StoredValue
from .memory import MemoryStore
from .qdrant import QdrantStore

if TYPE_CHECKING:
    from hookdispatch.config import Settings


def get_store(settings: Settings) -> DurableStore:
    """Build the store selected by ``settings.storage_backend``."""
    if settings.storage_backend == "qdrant":
        return QdrantStore(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
        )
    return MemoryStore()


__all__ = [
    "DurableStore",
    "MemoryStore",
    "Partition",
    "QdrantStore",
    "StoredValue",
    "get_store",
]
