"""hookdispatch: durable, at-least-once webhook delivery.

Given a webhook identity, a target URL and a base64 payload, hookdispatch
keeps attempting a signed POST with exponential backoff until the target
answers 2xx or the attempt budget runs out, then retains the delivery
history for audit before deleting it.

Quick Start:
    from hookdispatch.service import DispatchService

    async with DispatchService.create() as service:
        state = await service.dispatcher.create(
            "6f1c1a52-9a43-4bd6-8f39-5d1c3f1f0c55",
            "https://example.com/hooks/orders",
            "eyJvcmRlciI6IDQyfQ==",
        )

Or serve the HTTP API:
    python -m hookdispatch
"""

__version__ = "0.1.0"

# Configuration
from .config import DispatcherConfig, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    HookDispatchError,
    InvalidTransitionError,
    KeyImportError,
    NotFoundError,
    SchedulerError,
    SigningError,
    StorageError,
    TransportError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import Attempt, DispatcherState, DispatcherStatus

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DispatcherConfig",
    "Settings",
    "settings",
    # Exceptions
    "HookDispatchError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "SchedulerError",
    "ConfigurationError",
    "KeyImportError",
    "SigningError",
    "TransportError",
    "InvalidTransitionError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "Attempt",
    "DispatcherState",
    "DispatcherStatus",
]
