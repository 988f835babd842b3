"""Unit tests for the webhook dispatcher state machine."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import jwt
import pytest

from conftest import PAYLOAD, TARGET, WEBHOOK_ID, ScriptedTransport
from hookdispatch.config import DispatcherConfig
from hookdispatch.exceptions import NotFoundError, StorageError, TransportError
from hookdispatch.models import STATE_KEY, Attempt, DispatcherState, DispatcherStatus
from hookdispatch.webhooks import DeliveryResponse, Signer


async def fire(dispatcher, scheduler, identity=WEBHOOK_ID):
    """Consume the pending alarm and run the handler, as the scheduler would."""
    scheduler.fire(identity)
    await dispatcher.run_alarm(identity)


class TestCreate:
    """Tests for Dispatcher.create."""

    @pytest.mark.asyncio
    async def test_create_persists_pending_state(self, dispatcher, store, clock):
        """A new webhook is stored as PENDING with no attempts."""
        state = await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)

        assert state.id == WEBHOOK_ID
        assert state.target == TARGET
        assert state.payload == PAYLOAD
        assert state.status == DispatcherStatus.PENDING
        assert state.attempts == []
        assert state.provisioned_at == clock.now

        stored = await store.get(WEBHOOK_ID, STATE_KEY)
        assert DispatcherState.from_json(stored) == state

    @pytest.mark.asyncio
    async def test_create_arms_immediate_alarm(self, dispatcher, scheduler, clock):
        """Creation arms one alarm at the provisioning time."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        assert scheduler.history == [(WEBHOOK_ID, clock.now)]

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, dispatcher, scheduler, clock):
        """Repeating a create returns the stored state and arms nothing."""
        first = await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        clock.advance(timedelta(minutes=5))

        second = await dispatcher.create(WEBHOOK_ID, "https://other.example.com/", "b3RoZXI=")

        assert second == first
        assert second.target == TARGET
        assert len(scheduler.history) == 1

    @pytest.mark.asyncio
    async def test_create_after_attempts_returns_current_state(self, dispatcher, scheduler):
        """A repeated create reports progress made since the first one."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        state = await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        assert state.status == DispatcherStatus.SUCCEEDED
        assert len(state.attempts) == 1

    @pytest.mark.asyncio
    async def test_concurrent_creates_single_flight(self, dispatcher, scheduler, store):
        """Concurrent creates for one identity write and arm exactly once."""
        store.put = AsyncMock(wraps=store.put)

        results = await asyncio.gather(
            *(dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD) for _ in range(10))
        )

        assert all(r == results[0] for r in results)
        assert store.put.await_count == 1
        assert len(scheduler.history) == 1

    @pytest.mark.asyncio
    async def test_create_persist_failure_propagates(self, dispatcher, store):
        """A failed write fails the create and leaves nothing stored."""
        store.put = AsyncMock(side_effect=StorageError("disk full"))

        with pytest.raises(StorageError):
            await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        assert await store.get(WEBHOOK_ID, STATE_KEY) is None


class TestGet:
    """Tests for Dispatcher.get."""

    @pytest.mark.asyncio
    async def test_get_unknown_raises(self, dispatcher):
        """Reading a never-created identity raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            await dispatcher.get(WEBHOOK_ID)
        assert exc_info.value.resource_id == WEBHOOK_ID

    @pytest.mark.asyncio
    async def test_get_returns_created_state(self, dispatcher):
        """Reading after create returns the same state."""
        created = await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        assert await dispatcher.get(WEBHOOK_ID) == created

    @pytest.mark.asyncio
    async def test_get_has_no_side_effects(self, dispatcher, scheduler, transport):
        """Reads never arm alarms or attempt delivery."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await dispatcher.get(WEBHOOK_ID)
        await dispatcher.get(WEBHOOK_ID)

        assert len(scheduler.history) == 1
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_get_corrupt_state_raises_storage_error(self, dispatcher, store):
        """Unparseable stored state is reported as a storage failure."""
        await store.put(WEBHOOK_ID, STATE_KEY, {"id": WEBHOOK_ID, "status": "BOGUS"})
        with pytest.raises(StorageError):
            await dispatcher.get(WEBHOOK_ID)


class TestRunAlarm:
    """Tests for alarm-driven delivery attempts."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, dispatcher, scheduler, transport, clock, config):
        """A 200 response records success and schedules cleanup."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        state = await dispatcher.get(WEBHOOK_ID)
        assert state.status == DispatcherStatus.SUCCEEDED
        assert state.attempts == [Attempt(timestamp=clock.now, status=200, message="success")]
        assert scheduler.alarms[WEBHOOK_ID] == clock.now + config.retention
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_attempt_request_shape(self, dispatcher, scheduler, transport, rsa_private_key):
        """The attempt POSTs the decoded payload with a signed bearer token."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        call = transport.calls[0]
        assert call["url"] == TARGET
        assert call["body"] == b"pay"
        assert call["timeout"] == 10.0

        scheme, token = call["headers"]["Authorization"].split(" ", 1)
        assert scheme == "Bearer"
        claims = jwt.decode(
            token,
            rsa_private_key.public_key(),
            algorithms=["RS256"],
            issuer="webhookdispatcher",
        )
        assert claims["id"] == WEBHOOK_ID
        assert claims["exp"] - claims["iat"] == 30
        assert jwt.get_unverified_header(token)["kid"] == "test-key"

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self, make_dispatcher, scheduler, clock, config):
        """Five 500 responses back off 10, 100, 1000, 10000 ms then fail."""
        dispatcher = make_dispatcher(ScriptedTransport(500))
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)

        expected_delays = [
            timedelta(milliseconds=10),
            timedelta(milliseconds=100),
            timedelta(seconds=1),
            timedelta(seconds=10),
        ]
        for delay in expected_delays:
            await fire(dispatcher, scheduler)
            assert scheduler.alarms[WEBHOOK_ID] == clock.now + delay
            assert (await dispatcher.get(WEBHOOK_ID)).status == DispatcherStatus.PENDING
            clock.advance(delay)

        await fire(dispatcher, scheduler)

        state = await dispatcher.get(WEBHOOK_ID)
        assert state.status == DispatcherStatus.FAILED
        assert len(state.attempts) == 5
        assert all(a.status == 500 for a in state.attempts)
        assert all(a.message == "500: Internal Server Error" for a in state.attempts)
        assert scheduler.alarms[WEBHOOK_ID] == clock.now + config.retention

    @pytest.mark.asyncio
    async def test_eventual_success(self, make_dispatcher, scheduler):
        """Success after failures stops retrying."""
        transport = ScriptedTransport(500, 500, 201)
        dispatcher = make_dispatcher(transport)
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)

        for _ in range(3):
            await fire(dispatcher, scheduler)

        state = await dispatcher.get(WEBHOOK_ID)
        assert state.status == DispatcherStatus.SUCCEEDED
        assert [a.status for a in state.attempts] == [500, 500, 201]
        assert state.attempts[-1].message == "success"
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_transport_error_recorded(self, make_dispatcher, scheduler):
        """Network failures become status-0 attempts."""
        dispatcher = make_dispatcher(ScriptedTransport(TransportError("connection refused")))
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        state = await dispatcher.get(WEBHOOK_ID)
        assert state.status == DispatcherStatus.PENDING
        assert state.attempts[0].status == 0
        assert state.attempts[0].message == "TransportError: connection refused"
        assert WEBHOOK_ID in scheduler.alarms

    @pytest.mark.asyncio
    async def test_client_error_is_failure(self, make_dispatcher, scheduler):
        """4xx responses are retried like any other failure."""
        dispatcher = make_dispatcher(ScriptedTransport(DeliveryResponse(404, "Not Found")))
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        attempt = (await dispatcher.get(WEBHOOK_ID)).attempts[0]
        assert attempt.status == 404
        assert attempt.message == "404: Not Found"

    @pytest.mark.asyncio
    async def test_signing_failure_recorded(self, make_dispatcher, scheduler, transport):
        """A missing key fails the attempt without contacting the target."""
        dispatcher = make_dispatcher(transport, signer=Signer(None))
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        attempt = (await dispatcher.get(WEBHOOK_ID)).attempts[0]
        assert attempt.status == 0
        assert attempt.message == "KeyImportError: no private key configured"
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_undecodable_payload_recorded(self, dispatcher, scheduler, transport):
        """A payload that is not base64 fails the attempt."""
        await dispatcher.create(WEBHOOK_ID, TARGET, "not base64!")
        await fire(dispatcher, scheduler)

        attempt = (await dispatcher.get(WEBHOOK_ID)).attempts[0]
        assert attempt.status == 0
        assert attempt.message.startswith("ValueError: payload is not valid base64")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_attempt_timeout_recorded(self, make_dispatcher, scheduler):
        """A target that never answers fails the attempt after the timeout."""

        class HangingTransport:
            async def post(self, url, headers, body, timeout):
                await asyncio.sleep(10)

        dispatcher = make_dispatcher(
            HangingTransport(), config=DispatcherConfig(attempt_timeout_seconds=0.01)
        )
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        attempt = (await dispatcher.get(WEBHOOK_ID)).attempts[0]
        assert attempt.status == 0
        assert attempt.message == "TimeoutError: no response within 0.01s"

    @pytest.mark.asyncio
    async def test_attempt_persist_failure_propagates(self, dispatcher, scheduler, store):
        """A failed write after an attempt raises and arms no new alarm."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        store.put = AsyncMock(side_effect=StorageError("unavailable"))
        scheduler.fire(WEBHOOK_ID)

        with pytest.raises(StorageError):
            await dispatcher.run_alarm(WEBHOOK_ID)

        assert WEBHOOK_ID not in scheduler.alarms
        assert (await dispatcher.get(WEBHOOK_ID)).attempts == []

    @pytest.mark.asyncio
    async def test_alarm_without_state_is_noop(self, dispatcher, scheduler, transport):
        """A stray alarm does nothing and is not re-armed."""
        await dispatcher.run_alarm(WEBHOOK_ID)

        assert scheduler.history == []
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_alarm_emits_telemetry(self, dispatcher, scheduler, telemetry):
        """Each alarm cycle emits one record with the attempt status."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)

        record = telemetry.records[-1]
        assert record.webhook_id == WEBHOOK_ID
        assert record.event == "alarm"
        assert record.status == 200


class TestCleanup:
    """Tests for retention cleanup of terminal states."""

    @pytest.mark.asyncio
    async def test_terminal_alarm_deletes_state(self, dispatcher, scheduler, store):
        """The retention alarm removes the record."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)
        await fire(dispatcher, scheduler)

        assert len(store) == 0
        assert WEBHOOK_ID not in scheduler.alarms
        with pytest.raises(NotFoundError):
            await dispatcher.get(WEBHOOK_ID)

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, dispatcher, scheduler, transport):
        """Alarms after cleanup are no-ops."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)
        await fire(dispatcher, scheduler)

        await dispatcher.run_alarm(WEBHOOK_ID)
        await dispatcher.run_alarm(WEBHOOK_ID)

        assert WEBHOOK_ID not in scheduler.alarms
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_create_after_cleanup_starts_fresh(self, dispatcher, scheduler, clock):
        """Once cleaned up, the identity can be provisioned again."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        await fire(dispatcher, scheduler)
        await fire(dispatcher, scheduler)
        clock.advance(timedelta(days=31))

        state = await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        assert state.status == DispatcherStatus.PENDING
        assert state.provisioned_at == clock.now


class TestRecover:
    """Tests for re-arming alarms after a restart."""

    @pytest.mark.asyncio
    async def test_recover_arms_missing_alarms(self, dispatcher, store, scheduler, clock):
        """Stored states without an alarm are re-armed from their attempts."""
        state = DispatcherState(
            id=WEBHOOK_ID,
            target=TARGET,
            payload=PAYLOAD,
            provisioned_at=clock.now,
            attempts=[Attempt(timestamp=clock.now, status=500, message="500: error")],
        )
        await store.put(WEBHOOK_ID, STATE_KEY, state.to_json())

        armed = await dispatcher.recover()

        assert armed == 1
        assert scheduler.alarms[WEBHOOK_ID] == clock.now + timedelta(milliseconds=10)

    @pytest.mark.asyncio
    async def test_recover_keeps_existing_alarms(self, dispatcher, scheduler, clock):
        """Identities that still have an alarm are left alone."""
        await dispatcher.create(WEBHOOK_ID, TARGET, PAYLOAD)
        clock.advance(timedelta(hours=1))

        assert await dispatcher.recover() == 0
        assert len(scheduler.history) == 1

    @pytest.mark.asyncio
    async def test_recover_then_deliver(self, dispatcher, store, scheduler, clock):
        """A recovered identity resumes delivery where it left off."""
        state = DispatcherState(
            id=WEBHOOK_ID, target=TARGET, payload=PAYLOAD, provisioned_at=clock.now
        )
        await store.put(WEBHOOK_ID, STATE_KEY, state.to_json())

        await dispatcher.recover()
        assert scheduler.alarms[WEBHOOK_ID] == clock.now
        await fire(dispatcher, scheduler)

        assert (await dispatcher.get(WEBHOOK_ID)).status == DispatcherStatus.SUCCEEDED
