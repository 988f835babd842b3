"""Webhook delivery for hookdispatch.

Provides the per-identity dispatcher state machine, signed bearer tokens
and the outbound transport.

Example:
    ```python
    from hookdispatch.webhooks import Dispatcher, HttpxTransport, Signer

    dispatcher = Dispatcher(store, scheduler, Signer(private_jwk), HttpxTransport())
    await scheduler.start(dispatcher.run_alarm)
    await dispatcher.create(webhook_id, target, payload)
    ```
"""

from .dispatcher import SUCCESS_MESSAGE, Dispatcher
from .locks import KeyedLock
from .signing import Signer
from .transitions import (
    Transition,
    backoff_delay,
    cleanup_deadline,
    next_transition,
    recovery_deadline,
)
from .transport import DeliveryResponse, HttpxTransport, Transport

__all__ = [
    "SUCCESS_MESSAGE",
    "DeliveryResponse",
    "Dispatcher",
    "HttpxTransport",
    "KeyedLock",
    "Signer",
    "Transition",
    "Transport",
    "backoff_delay",
    "cleanup_deadline",
    "next_transition",
    "recovery_deadline",
]
