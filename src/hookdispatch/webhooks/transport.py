"""Outbound delivery transport.

One POST per attempt, bounded by a timeout. The Transport protocol keeps the
retry policy testable with a scripted fake instead of real network I/O.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from hookdispatch.exceptions import TransportError
from hookdispatch.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeliveryResponse:
    """HTTP response to a delivery attempt."""

    status: int
    status_text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class Transport(Protocol):
    """Performs one outbound delivery POST."""

    @abstractmethod
    async def post(
        self,
        url: str,
        headers: dict[str, str],
        body: bytes,
        timeout: float,
    ) -> DeliveryResponse:
        """POST ``body`` to ``url``.

        Any HTTP response, including 4xx/5xx, is returned.

        Raises:
            TransportError: On timeout or network failure.
        """
        ...


class HttpxTransport:
    """Transport backed by a shared httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def post(
        self,
        url: str,
        headers: dict[str, str],
        body: bytes,
        timeout: float,
    ) -> DeliveryResponse:
        try:
            response = await self.client.post(
                url,
                content=body,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"request timed out after {timeout:g}s") from e
        except httpx.RequestError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        logger.debug("Delivery response", url=url, status=response.status_code)
        return DeliveryResponse(status=response.status_code, status_text=response.reason_phrase)
