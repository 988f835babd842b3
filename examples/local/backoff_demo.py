#!/usr/bin/env python3
"""Retry and backoff demo.

Runs a Dispatcher in-process against a flaky fake target and prints every
attempt as it is recorded:

- attempts 1-3 get 503, backed off 10, 100 and 1000 ms
- attempt 4 gets 200 and the webhook is SUCCEEDED

No external dependencies required - runs entirely locally with a throwaway
RSA key and the in-memory store.
"""

import asyncio
import base64
import uuid

from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from hookdispatch import DispatcherStatus, configure_logging
from hookdispatch.scheduler import InProcessAlarmScheduler
from hookdispatch.storage import MemoryStore
from hookdispatch.webhooks import DeliveryResponse, Dispatcher, Signer


class FlakyTarget:
    """Answers 503 a few times, then 200."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def post(self, url, headers, body, timeout) -> DeliveryResponse:
        self.calls += 1
        print(f"  -> POST {url} ({len(body)} bytes, {headers['Authorization'][:20]}...)")
        if self.calls <= self.failures:
            return DeliveryResponse(503, "Service Unavailable")
        return DeliveryResponse(200, "OK")


async def main() -> None:
    configure_logging(level="WARNING", format="text")

    print("=" * 70)
    print("hookdispatch Retry and Backoff Demo")
    print("=" * 70)

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    signer = Signer(RSAAlgorithm.to_jwk(key, as_dict=True))

    store = MemoryStore()
    scheduler = InProcessAlarmScheduler(workers=1)
    dispatcher = Dispatcher(store, scheduler, signer, FlakyTarget(failures=3))
    await scheduler.start(dispatcher.run_alarm)

    webhook_id = str(uuid.uuid4())
    payload = base64.b64encode(b'{"event": "invoice.paid"}').decode()
    await dispatcher.create(webhook_id, "https://example.com/hooks", payload)
    print(f"\nProvisioned {webhook_id}\n")

    seen = 0
    while True:
        state = await dispatcher.get(webhook_id)
        for attempt in state.attempts[seen:]:
            print(f"  #{seen + 1} {attempt.timestamp:%H:%M:%S.%f}  {attempt.message}")
            seen += 1
        if state.status != DispatcherStatus.PENDING:
            break
        await asyncio.sleep(0.005)

    print(f"\nFinal status: {state.status.value} after {len(state.attempts)} attempts")
    print(f"Cleanup alarm: {await scheduler.get_alarm(webhook_id):%Y-%m-%d %H:%M} UTC")

    await scheduler.stop()


if __name__ == "__main__":
    asyncio.run(main())
