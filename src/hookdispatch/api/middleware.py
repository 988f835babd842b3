"""Request telemetry middleware.

Emits one telemetry record per request and logs it with timing.
"""

from __future__ import annotations

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from hookdispatch.logging import get_logger
from hookdispatch.telemetry import TelemetryRecord, TelemetrySink

logger = get_logger(__name__)


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Records method, path, webhook id and status of every request.

    Endpoints expose the webhook id they acted on as ``request.state.webhook_id``.
    """

    def __init__(self, app: ASGIApp, sink: TelemetrySink) -> None:
        super().__init__(app)
        self._sink = sink

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        record = TelemetryRecord(
            method=request.method,
            event="fetch",
            path=request.url.path,
        )
        try:
            response = await call_next(request)
            record.status = response.status_code
        except Exception as e:
            record.status = 500
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            raise
        finally:
            record.webhook_id = getattr(request.state, "webhook_id", "")
            self._sink.send(record)

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=record.status,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return response
