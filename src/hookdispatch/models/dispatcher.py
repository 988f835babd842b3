"""Dispatcher state models.

A DispatcherState is created once per webhook identity, mutated only by the
alarm-driven attempt cycle and deleted after spending the retention window
in a terminal status.
"""

from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Key of the state blob inside an identity's partition
STATE_KEY = "state"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class DispatcherStatus(str, Enum):
    """Lifecycle of a webhook delivery.

    Transitions are PENDING -> SUCCEEDED and PENDING -> FAILED only.
    """

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({DispatcherStatus.SUCCEEDED, DispatcherStatus.FAILED})


class Attempt(BaseModel):
    """Outcome of one delivery attempt.

    Attributes:
        timestamp: When the attempt finished.
        status: HTTP status code, or 0 if no response was received.
        message: "success", or the failure description.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: datetime = Field(default_factory=utc_now, description="When the attempt ran")
    status: int = Field(default=0, ge=0, description="HTTP status code (0 if none)")
    message: str = Field(default="", description="Outcome description")

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status < 300


class DispatcherState(BaseModel):
    """Persisted delivery record for one webhook identity.

    ``id``, ``target``, ``payload`` and ``provisioned_at`` are written once at
    creation. ``attempts`` is append-only and in chronological order.

    The JSON form uses ``provisionedAt`` for the creation timestamp.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(description="Webhook identity")
    target: str = Field(description="Destination URL")
    payload: str = Field(description="Base64-encoded request body")
    status: DispatcherStatus = Field(default=DispatcherStatus.PENDING)
    provisioned_at: datetime = Field(
        default_factory=utc_now,
        alias="provisionedAt",
        description="When the webhook was created",
    )
    attempts: list[Attempt] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def last_attempt(self) -> Attempt | None:
        return self.attempts[-1] if self.attempts else None

    def decoded_payload(self) -> bytes:
        """Decode the stored base64 payload into the request body.

        Raises:
            ValueError: If the payload is not valid base64.
        """
        try:
            return base64.b64decode(self.payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"payload is not valid base64: {e}") from e

    def to_json(self) -> dict[str, object]:
        """Serialize to the persisted/wire JSON layout."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json(cls, data: dict[str, object]) -> DispatcherState:
        return cls.model_validate(data)
