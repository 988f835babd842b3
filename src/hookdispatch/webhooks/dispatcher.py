"""Webhook dispatcher: the per-identity delivery state machine.

Each webhook identity owns one DispatcherState in the durable store and at
most one pending alarm. ``create`` provisions the state and arms an
immediate alarm; every alarm firing runs ``run_alarm``, which performs one
signed delivery attempt, records it, and re-arms the alarm with backoff,
or for terminal states deletes the record once retention has elapsed.

All operations on one identity are serialized through a KeyedLock, so
creation is exactly-once and backoff is always computed from the latest
persisted attempt count.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError

from hookdispatch.config import DispatcherConfig
from hookdispatch.exceptions import NotFoundError, StorageError
from hookdispatch.logging import bind_context, get_logger, unbind_context
from hookdispatch.models import STATE_KEY, Attempt, DispatcherState, utc_now
from hookdispatch.scheduler import AlarmScheduler
from hookdispatch.storage import DurableStore, Partition
from hookdispatch.telemetry import NullTelemetrySink, TelemetryRecord, TelemetrySink

from .locks import KeyedLock
from .signing import Signer
from .transitions import next_transition, recovery_deadline
from .transport import DeliveryResponse, Transport

logger = get_logger(__name__)

SUCCESS_MESSAGE = "success"


class Dispatcher:
    """Drives delivery of every webhook identity.

    Example:
        ```python
        dispatcher = Dispatcher(store, scheduler, signer, HttpxTransport())
        await scheduler.start(dispatcher.run_alarm)

        state = await dispatcher.create(webhook_id, "https://example.com/hook", payload_b64)
        ...
        state = await dispatcher.get(webhook_id)
        ```
    """

    def __init__(
        self,
        store: DurableStore,
        scheduler: AlarmScheduler,
        signer: Signer,
        transport: Transport,
        config: DispatcherConfig | None = None,
        telemetry: TelemetrySink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Durable per-identity storage.
            scheduler: Alarm scheduler; its handler must be ``run_alarm``.
            signer: Issues the bearer token sent with each attempt.
            transport: Performs the outbound POST.
            config: Backoff, attempt and retention policy.
            telemetry: Receives one record per alarm cycle.
            clock: Source of the current time.
        """
        self._store = store
        self._scheduler = scheduler
        self._signer = signer
        self._transport = transport
        self._config = config or DispatcherConfig()
        self._telemetry = telemetry or NullTelemetrySink()
        self._clock = clock
        self._locks = KeyedLock()

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    async def _load(self, partition: Partition) -> DispatcherState | None:
        data = await partition.get(STATE_KEY)
        if data is None:
            return None
        try:
            return DispatcherState.from_json(data)
        except PydanticValidationError as e:
            raise StorageError(f"Corrupt dispatcher state for {partition.identity}: {e}") from e

    async def create(self, identity: str, target: str, payload: str) -> DispatcherState:
        """Provision delivery for ``identity``, or return its existing state.

        On first call this writes the state once and arms one immediate
        alarm. Later calls for the same identity return the stored state
        unchanged and have no side effects, whatever target and payload
        they carry.

        Args:
            identity: Webhook identity.
            target: Destination URL.
            payload: Base64-encoded request body.

        Returns:
            The new or existing DispatcherState.
        """
        async with self._locks.hold(identity):
            partition = self._store.partition(identity)
            existing = await self._load(partition)
            if existing is not None:
                logger.info("Webhook already provisioned", webhook_id=identity)
                return existing

            state = DispatcherState(
                id=identity,
                target=target,
                payload=payload,
                provisioned_at=self._clock(),
            )
            # A stray alarm for an unsaved state is a no-op, so arm first
            await self._scheduler.set_alarm(identity, state.provisioned_at)
            await partition.put(STATE_KEY, state.to_json())

        logger.info("Webhook provisioned", webhook_id=identity, target=target)
        return state

    async def get(self, identity: str) -> DispatcherState:
        """Read the stored state.

        Raises:
            NotFoundError: If the identity was never created or was cleaned up.
        """
        async with self._locks.hold(identity):
            state = await self._load(self._store.partition(identity))
        if state is None:
            raise NotFoundError(identity)
        return state

    async def run_alarm(self, identity: str) -> None:
        """Handle one alarm firing for ``identity``.

        - no state: nothing to do, the alarm is not re-armed
        - terminal state: retention has elapsed; delete the partition
        - PENDING: perform one attempt, persist, arm the next alarm

        Attempt-level failures are recorded on the state. Only store and
        scheduler failures propagate.
        """
        record = TelemetryRecord(webhook_id=identity, event="alarm")
        bind_context(webhook_id=identity)
        try:
            async with self._locks.hold(identity):
                partition = self._store.partition(identity)
                state = await self._load(partition)

                if state is None:
                    logger.info("Skipping alarm, no dispatcher state")
                    return

                if state.is_terminal:
                    await partition.delete_all()
                    await self._scheduler.delete_alarm(identity)
                    logger.info("Cleaned up webhook", status=state.status.value)
                    return

                attempt = await self._attempt(state)
                record.status = attempt.status

                transition = next_transition(state, attempt, attempt.timestamp, self._config)
                await partition.put(STATE_KEY, transition.state.to_json())
                await self._scheduler.set_alarm(identity, transition.alarm_at)

            logger.info(
                "Delivery attempt recorded",
                attempt=len(transition.state.attempts),
                http_status=attempt.status,
                outcome=attempt.message,
                status=transition.state.status.value,
                next_alarm=transition.alarm_at.isoformat(),
            )
        finally:
            self._telemetry.send(record)
            unbind_context("webhook_id")

    async def _attempt(self, state: DispatcherState) -> Attempt:
        """Perform one delivery attempt and describe its outcome.

        Never raises: signing, decoding, transport and timeout failures all
        become a failed Attempt with status 0.
        """
        timeout = self._config.attempt_timeout_seconds
        try:
            token = self._signer.sign({"id": state.id}, self._config.token_ttl_seconds)
            body = state.decoded_payload()
            response: DeliveryResponse = await asyncio.wait_for(
                self._transport.post(
                    state.target,
                    headers={"Authorization": f"Bearer {token}"},
                    body=body,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except TimeoutError:
            return Attempt(
                timestamp=self._clock(),
                status=0,
                message=f"TimeoutError: no response within {timeout:g}s",
            )
        except Exception as e:
            logger.warning("Delivery attempt errored", error=str(e), error_type=type(e).__name__)
            return Attempt(timestamp=self._clock(), status=0, message=f"{type(e).__name__}: {e}")

        if response.ok:
            return Attempt(timestamp=self._clock(), status=response.status, message=SUCCESS_MESSAGE)
        return Attempt(
            timestamp=self._clock(),
            status=response.status,
            message=f"{response.status}: {response.status_text}",
        )

    async def recover(self) -> int:
        """Re-arm alarms for every stored identity that has none.

        Used at startup, since in-process alarms do not survive a restart.
        The deadline is derived from the persisted attempts alone.

        Returns:
            Number of alarms armed.
        """
        now = self._clock()
        armed = 0
        async for identity in self._store.identities():
            async with self._locks.hold(identity):
                state = await self._load(self._store.partition(identity))
                if state is None or await self._scheduler.get_alarm(identity) is not None:
                    continue
                await self._scheduler.set_alarm(
                    identity, recovery_deadline(state, now, self._config)
                )
                armed += 1

        logger.info("Recovered dispatcher alarms", armed=armed)
        return armed
