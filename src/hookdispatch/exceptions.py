"""hookdispatch exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookDispatchError for easy catching.

Delivery-attempt errors (KeyImportError, SigningError, TransportError) never
leave the dispatcher: they are recorded as the message of a failed attempt.
Infrastructure errors (StorageError, SchedulerError) are fatal to the
operation that raised them.
"""

from __future__ import annotations


class HookDispatchError(Exception):
    """Base exception for all hookdispatch errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookdispatch_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookDispatchError):
    """Invalid input provided.

    Raised when a create or read request fails validation. Never reaches
    the dispatcher.
    """

    code: str = "validation_error"


class NotFoundError(HookDispatchError):
    """No dispatcher state exists for an identity.

    Covers both "never created" and "cleaned up after retention".

    Attributes:
        resource_id: The webhook identity that was looked up.
    """

    code: str = "not_found"

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        super().__init__(f"webhook not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookDispatchError):
    """Durable store operation failed."""

    code: str = "storage_error"


class SchedulerError(HookDispatchError):
    """Alarm scheduler operation failed."""

    code: str = "scheduler_error"


class ConfigurationError(HookDispatchError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class KeyImportError(HookDispatchError):
    """Private key material could not be parsed."""

    code: str = "key_import_error"


class SigningError(HookDispatchError):
    """Token signing failed."""

    code: str = "signing_error"


class TransportError(HookDispatchError):
    """Outbound delivery never produced an HTTP response.

    Raised for timeouts and network failures. The status is always 0
    because no response was received.
    """

    code: str = "transport_error"
    status: int = 0


class InvalidTransitionError(HookDispatchError):
    """A state transition was applied to a terminal dispatcher."""

    code: str = "invalid_transition"
