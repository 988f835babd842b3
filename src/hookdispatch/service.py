"""hookdispatch service layer.

Wires the durable store, alarm scheduler, signer and transport into a
running Dispatcher.

Example:
    ```python
    from hookdispatch.service import DispatchService

    async with DispatchService.create() as service:
        state = await service.dispatcher.create(webhook_id, target, payload)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from hookdispatch.config import Settings
from hookdispatch.exceptions import ConfigurationError, KeyImportError
from hookdispatch.logging import get_logger
from hookdispatch.scheduler import AlarmScheduler, InProcessAlarmScheduler
from hookdispatch.storage import DurableStore, get_store
from hookdispatch.telemetry import LoggingTelemetrySink, TelemetrySink
from hookdispatch.webhooks import Dispatcher, HttpxTransport, Signer, Transport

logger = get_logger(__name__)


@dataclass
class DispatchService:
    """Owns the dispatcher and the lifecycle of its collaborators.

    Attributes:
        store: Durable per-identity storage.
        scheduler: Alarm scheduler firing into the dispatcher.
        dispatcher: The delivery state machine.
        signer: Issues delivery tokens.
        transport: Outbound transport, closed with the service.
        telemetry: Sink for request and alarm records.
        settings: Configuration settings.
    """

    store: DurableStore
    scheduler: AlarmScheduler
    dispatcher: Dispatcher
    signer: Signer
    transport: Transport
    telemetry: TelemetrySink
    settings: Settings
    _started: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(cls, settings: Settings | None = None) -> DispatchService:
        """Create a DispatchService with default dependencies.

        Args:
            settings: Optional settings. Uses environment if None.
        """
        if settings is None:
            settings = Settings()

        store = get_store(settings)
        scheduler = InProcessAlarmScheduler(
            workers=settings.scheduler_workers,
            retry_delay=timedelta(seconds=settings.alarm_retry_delay_seconds),
        )
        private_key = settings.private_key.get_secret_value() if settings.private_key else None
        signer = Signer(private_key, issuer=settings.token_issuer)
        transport = HttpxTransport()
        telemetry = LoggingTelemetrySink()
        dispatcher = Dispatcher(
            store=store,
            scheduler=scheduler,
            signer=signer,
            transport=transport,
            config=settings.dispatcher,
            telemetry=telemetry,
        )
        return cls(
            store=store,
            scheduler=scheduler,
            dispatcher=dispatcher,
            signer=signer,
            transport=transport,
            telemetry=telemetry,
            settings=settings,
        )

    async def initialize(self) -> None:
        """Open the store, re-arm persisted alarms and start the scheduler."""
        if self.settings.env == "production":
            try:
                self.signer.load()
            except KeyImportError as e:
                raise ConfigurationError(f"Invalid HOOKDISPATCH_PRIVATE_KEY: {e.message}") from e
        await self.store.initialize()
        await self.dispatcher.recover()
        await self.scheduler.start(self.dispatcher.run_alarm)
        self._started = True
        logger.info(
            "Dispatch service started",
            storage_backend=self.settings.storage_backend,
            env=self.settings.env,
        )

    async def close(self) -> None:
        """Stop the scheduler and release connections."""
        if self._started:
            await self.scheduler.stop()
            self._started = False
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()
        await self.store.close()

    async def __aenter__(self) -> DispatchService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
