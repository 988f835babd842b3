"""Request and response schemas for the hookdispatch API."""

from __future__ import annotations

import base64
import binascii
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl, field_validator


class CreateWebhookRequest(BaseModel):
    """Request to provision delivery of one webhook.

    Attributes:
        id: Webhook identity (UUID). Repeating an id returns the existing state.
        target: URL the payload is POSTed to.
        payload: Base64-encoded request body.
    """

    id: UUID = Field(description="Webhook identity")
    target: HttpUrl = Field(description="Destination URL")
    payload: str = Field(description="Base64-encoded body delivered to the target")

    @field_validator("payload")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Reject payloads that would fail to decode at delivery time."""
        try:
            base64.b64decode(v, validate=True)
        except binascii.Error as e:
            raise ValueError(f"must be valid base64 ({e})") from e
        return v

    @property
    def identity(self) -> str:
        return str(self.id)

