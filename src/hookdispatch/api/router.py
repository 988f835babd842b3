"""FastAPI router for hookdispatch endpoints.

The router only validates and routes. Retries are owned by the dispatcher;
these endpoints observe state, they never drive delivery.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse

from hookdispatch.models import DispatcherState
from hookdispatch.webhooks import Dispatcher

from .schemas import CreateWebhookRequest

router = APIRouter()

# Dispatcher instance (set by app lifespan)
_dispatcher: Dispatcher | None = None


def set_dispatcher(dispatcher: Dispatcher | None) -> None:
    """Set the global dispatcher instance."""
    global _dispatcher
    _dispatcher = dispatcher


async def get_dispatcher() -> Dispatcher:
    """Dependency to get the Dispatcher instance."""
    if _dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dispatcher not initialized",
        )
    return _dispatcher


DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]


@router.get("/_health", response_class=PlainTextResponse, tags=["system"])
async def health_check() -> str:
    """Liveness probe."""
    return "ok"


@router.post(
    "/api/webhooks",
    response_model=DispatcherState,
    tags=["webhooks"],
)
async def create_webhook(
    body: CreateWebhookRequest,
    request: Request,
    dispatcher: DispatcherDep,
) -> DispatcherState:
    """Provision delivery of a webhook.

    Idempotent per ``id``: repeating a create returns the existing state
    unchanged with status 200.
    """
    request.state.webhook_id = body.identity
    return await dispatcher.create(body.identity, str(body.target), body.payload)


@router.get(
    "/api/webhooks/{webhook_id}",
    response_model=DispatcherState,
    tags=["webhooks"],
)
async def get_webhook(
    webhook_id: UUID,
    request: Request,
    dispatcher: DispatcherDep,
) -> DispatcherState:
    """Get the delivery state and attempt history of a webhook.

    Returns 404 once the record has been cleaned up after retention.
    """
    request.state.webhook_id = str(webhook_id)
    return await dispatcher.get(str(webhook_id))
