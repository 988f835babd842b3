"""Qdrant-backed durable store.

Each (identity, key) pair is one point in a single collection. Points carry
a one-dimensional zero vector since no similarity search is needed; the
stored value lives in the ``value`` payload field and the ``identity``
field is indexed so a partition can be deleted with one filter.
"""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator
from typing import Any

import httpx
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from hookdispatch.exceptions import StorageError
from hookdispatch.logging import get_logger

from .base import DurableStore, StoredValue
from .retry import qdrant_retry

logger = get_logger(__name__)

COLLECTION_SUFFIX = "dispatchers"
_SCROLL_BATCH = 256

# Errors that mean Qdrant could not complete the operation
_QDRANT_ERRORS = (httpx.HTTPError, UnexpectedResponse, ResponseHandlingException)


class QdrantStore(DurableStore):
    """DurableStore persisting partitions in a Qdrant collection."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str = "hookdispatch",
        location: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            url: Qdrant server URL.
            api_key: Qdrant API key.
            prefix: Collection name prefix.
            location: Alternative to url, e.g. ":memory:" for a local instance.
        """
        self._url = url
        self._api_key = api_key
        self._location = location
        self._collection = f"{prefix}_{COLLECTION_SUFFIX}"
        self._client: AsyncQdrantClient | None = None

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def collection_name(self) -> str:
        return self._collection

    async def initialize(self) -> None:
        if self._location is not None:
            self._client = AsyncQdrantClient(location=self._location)
        else:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        try:
            await self._ensure_collection()
        except _QDRANT_ERRORS as e:
            raise StorageError(f"Failed to initialize Qdrant collection: {e}") from e
        logger.info("Qdrant store initialized", collection=self._collection)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    @staticmethod
    def _point_id(identity: str, key: str) -> str:
        """Deterministic UUID-format point ID for an (identity, key) pair."""
        h = hashlib.sha256(f"{identity}/{key}".encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    @staticmethod
    def _identity_filter(identity: str) -> models.Filter:
        return models.Filter(
            must=[
                models.FieldCondition(
                    key="identity",
                    match=models.MatchValue(value=identity),
                )
            ]
        )

    @qdrant_retry
    async def _ensure_collection(self) -> None:
        collections = await self.client.get_collections()
        existing = [c.name for c in collections.collections]
        if self._collection in existing:
            return

        await self.client.create_collection(
            collection_name=self._collection,
            vectors_config=models.VectorParams(size=1, distance=models.Distance.DOT),
        )
        await self.client.create_payload_index(
            collection_name=self._collection,
            field_name="identity",
            field_schema=models.PayloadSchemaType.KEYWORD,
        )

    @qdrant_retry
    async def _retrieve(self, point_id: str) -> list[Any]:
        return await self.client.retrieve(
            collection_name=self._collection,
            ids=[point_id],
            with_payload=True,
        )

    @qdrant_retry
    async def _upsert(self, point: models.PointStruct) -> None:
        await self.client.upsert(
            collection_name=self._collection,
            points=[point],
            wait=True,
        )

    @qdrant_retry
    async def _delete(self, identity: str) -> None:
        await self.client.delete(
            collection_name=self._collection,
            points_selector=models.FilterSelector(filter=self._identity_filter(identity)),
            wait=True,
        )

    @qdrant_retry
    async def _scroll(self, offset: Any) -> tuple[list[Any], Any]:
        return await self.client.scroll(
            collection_name=self._collection,
            limit=_SCROLL_BATCH,
            offset=offset,
            with_payload=["identity"],
            with_vectors=False,
        )

    async def get(self, identity: str, key: str) -> StoredValue | None:
        try:
            results = await self._retrieve(self._point_id(identity, key))
        except _QDRANT_ERRORS as e:
            raise StorageError(f"Failed to read {key} for {identity}: {e}") from e

        if not results or results[0].payload is None:
            return None
        value: StoredValue | None = results[0].payload.get("value")
        return value

    async def put(self, identity: str, key: str, value: StoredValue) -> None:
        point = models.PointStruct(
            id=self._point_id(identity, key),
            vector=[0.0],
            payload={"identity": identity, "key": key, "value": value},
        )
        try:
            await self._upsert(point)
        except _QDRANT_ERRORS as e:
            raise StorageError(f"Failed to write {key} for {identity}: {e}") from e

    async def delete_all(self, identity: str) -> None:
        try:
            await self._delete(identity)
        except _QDRANT_ERRORS as e:
            raise StorageError(f"Failed to delete partition {identity}: {e}") from e

    async def identities(self) -> AsyncIterator[str]:
        seen: set[str] = set()
        offset: Any = None
        while True:
            try:
                points, offset = await self._scroll(offset)
            except _QDRANT_ERRORS as e:
                raise StorageError(f"Failed to scan partitions: {e}") from e

            for point in points:
                identity = (point.payload or {}).get("identity")
                if identity and identity not in seen:
                    seen.add(identity)
                    yield identity

            if offset is None:
                break
