"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from hookdispatch.config import DispatcherConfig
from hookdispatch.scheduler import AlarmHandler, AlarmScheduler
from hookdispatch.storage import MemoryStore
from hookdispatch.telemetry import TelemetryRecord, TelemetrySink
from hookdispatch.webhooks import DeliveryResponse, Dispatcher, Signer

WEBHOOK_ID = "0b6f8a52-3c2d-4f7e-9a1b-2c3d4e5f6a7b"
TARGET = "https://example.com/ok"
PAYLOAD = "cGF5"  # b"pay"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeScheduler(AlarmScheduler):
    """Records alarms instead of firing them.

    ``history`` holds every (identity, when) passed to set_alarm, in order.
    """

    def __init__(self) -> None:
        self.alarms: dict[str, datetime] = {}
        self.history: list[tuple[str, datetime]] = []
        self.deleted: list[str] = []
        self.handler: AlarmHandler | None = None

    async def start(self, handler: AlarmHandler) -> None:
        self.handler = handler

    async def stop(self) -> None:
        self.handler = None

    async def set_alarm(self, identity: str, when: datetime) -> None:
        self.alarms[identity] = when
        self.history.append((identity, when))

    async def get_alarm(self, identity: str) -> datetime | None:
        return self.alarms.get(identity)

    async def delete_alarm(self, identity: str) -> None:
        self.alarms.pop(identity, None)
        self.deleted.append(identity)

    def fire(self, identity: str) -> datetime:
        """Consume the identity's pending alarm, as a firing would."""
        return self.alarms.pop(identity)


class ScriptedTransport:
    """Transport returning scripted outcomes in order.

    Each script entry is a status code, a DeliveryResponse, or an exception
    to raise. The last entry repeats once the script is exhausted.
    """

    def __init__(self, *script: int | DeliveryResponse | BaseException) -> None:
        self.script = list(script) or [200]
        self.calls: list[dict[str, Any]] = []

    async def post(
        self,
        url: str,
        headers: dict[str, str],
        body: bytes,
        timeout: float,
    ) -> DeliveryResponse:
        self.calls.append({"url": url, "headers": headers, "body": body, "timeout": timeout})
        outcome = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, DeliveryResponse):
            return outcome
        reasons = {200: "OK", 201: "Created", 404: "Not Found", 500: "Internal Server Error"}
        return DeliveryResponse(status=outcome, status_text=reasons.get(outcome, ""))


class RecordingTelemetrySink(TelemetrySink):
    def __init__(self) -> None:
        self.records: list[TelemetryRecord] = []

    def write(self, record: TelemetryRecord) -> None:
        self.records.append(record)


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_jwk(rsa_private_key: rsa.RSAPrivateKey) -> dict[str, Any]:
    """RSA private key as a JWK dict, with a key id."""
    jwk: dict[str, Any] = RSAAlgorithm.to_jwk(rsa_private_key, as_dict=True)
    jwk["kid"] = "test-key"
    return jwk


@pytest.fixture
def signer(private_jwk: dict[str, Any]) -> Signer:
    return Signer(private_jwk)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport(200)


@pytest.fixture
def telemetry() -> RecordingTelemetrySink:
    return RecordingTelemetrySink()


@pytest.fixture
def config() -> DispatcherConfig:
    return DispatcherConfig()


@pytest.fixture
def make_dispatcher(
    store: MemoryStore,
    scheduler: FakeScheduler,
    signer: Signer,
    clock: FakeClock,
    config: DispatcherConfig,
    telemetry: RecordingTelemetrySink,
) -> Callable[..., Dispatcher]:
    """Build a Dispatcher over the shared fakes with a given transport."""

    def _make(transport: Any, **overrides: Any) -> Dispatcher:
        kwargs: dict[str, Any] = {
            "store": store,
            "scheduler": scheduler,
            "signer": signer,
            "transport": transport,
            "config": config,
            "telemetry": telemetry,
            "clock": clock,
        }
        kwargs.update(overrides)
        return Dispatcher(**kwargs)

    return _make


@pytest.fixture
def dispatcher(make_dispatcher: Callable[..., Dispatcher], transport: ScriptedTransport) -> Dispatcher:
    return make_dispatcher(transport)
