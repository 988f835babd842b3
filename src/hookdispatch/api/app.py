"""FastAPI application for hookdispatch."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hookdispatch import __version__
from hookdispatch.config import Settings
from hookdispatch.exceptions import HookDispatchError, NotFoundError, ValidationError
from hookdispatch.logging import configure_logging, get_logger
from hookdispatch.service import DispatchService
from hookdispatch.telemetry import LoggingTelemetrySink, TelemetrySink

from .middleware import TelemetryMiddleware
from .router import router, set_dispatcher

logger = get_logger(__name__)


def format_validation_errors(exc: RequestValidationError) -> str:
    """Flatten request validation errors into ``field: message`` pairs.

    The request part (``body``, ``path``, ``query``) is dropped from the
    location unless it is all there is.
    """
    parts = []
    for error in exc.errors():
        loc = [str(p) for p in error.get("loc", ())]
        if len(loc) > 1 and loc[0] in ("body", "path", "query"):
            loc = loc[1:]
        parts.append(f"{'.'.join(loc)}: {error.get('msg', 'invalid')}")
    return ", ".join(parts)


def create_app(
    settings: Settings | None = None,
    service: DispatchService | None = None,
    telemetry: TelemetrySink | None = None,
) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        service: Optional pre-built service, started and stopped with the app.
        telemetry: Sink for request records. Defaults to the service's sink.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from hookdispatch.api import create_app

        app = create_app()
        # Run with: uvicorn hookdispatch.api:app
        ```
    """
    if settings is None:
        settings = service.settings if service is not None else Settings()
    if telemetry is None:
        telemetry = service.telemetry if service is not None else LoggingTelemetrySink()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start the dispatch service on startup and stop it on shutdown."""
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting hookdispatch API",
            log_level=settings.log_level,
            storage_backend=settings.storage_backend,
        )

        dispatch_service = service or DispatchService.create(settings)
        await dispatch_service.initialize()
        set_dispatcher(dispatch_service.dispatcher)

        yield

        set_dispatcher(None)
        await dispatch_service.close()

    app = FastAPI(
        title="hookdispatch",
        description="Durable at-least-once webhook delivery.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(TelemetryMiddleware, sink=telemetry)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle malformed requests with 400 status."""
        error = ValidationError(format_validation_errors(exc))
        logger.warning("Validation error", error=error.message, path=request.url.path)
        return JSONResponse(status_code=400, content=error.to_dict())

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning("Validation error", error=exc.message, path=request.url.path)
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info("Webhook not found", resource_id=exc.resource_id, path=request.url.path)
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(HookDispatchError)
    async def hookdispatch_error_handler(
        request: Request, exc: HookDispatchError
    ) -> JSONResponse:
        """Handle all other hookdispatch errors with 500 status."""
        logger.error("hookdispatch error", error=exc.message, code=exc.code, path=request.url.path)
        return JSONResponse(status_code=500, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors with 500 status."""
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "internal_error", "message": "internal server error"}},
        )

    app.include_router(router)

    return app


# Default app instance for uvicorn
app = create_app()
