#!/usr/bin/env python3
"""REST API client demonstration.

This example shows how to use the hookdispatch REST API with httpx.
First, start the server in another terminal:

    HOOKDISPATCH_LOG_FORMAT=text python -m hookdispatch

Then run this script:

    python examples/external/api_client.py

The API provides:
    POST /api/webhooks       - Provision delivery of a webhook
    GET  /api/webhooks/{id}  - Delivery status and attempt history
    GET  /_health            - Health check
"""

import asyncio
import base64
import json
import uuid

import httpx

BASE_URL = "http://localhost:8787"
TARGET = "https://httpbin.org/status/500"


async def main() -> None:
    """Run the API client demo."""
    print("=" * 60)
    print("hookdispatch REST API Demo")
    print("=" * 60)
    print(f"\nConnecting to {BASE_URL}...")

    async with httpx.AsyncClient(timeout=30.0) as client:
        # =====================================================================
        # Health Check
        # =====================================================================
        print("\n🏥 Checking API health...")
        try:
            resp = await client.get(f"{BASE_URL}/_health")
            resp.raise_for_status()
            print(f"  Status: {resp.text}")
        except httpx.ConnectError:
            print("\n❌ Could not connect to API server!")
            print("   Start the server with: python -m hookdispatch")
            return

        # =====================================================================
        # Create: provision a webhook
        # =====================================================================
        webhook_id = str(uuid.uuid4())
        body = json.dumps({"event": "order.created", "order_id": 42}).encode()
        request = {
            "id": webhook_id,
            "target": TARGET,
            "payload": base64.b64encode(body).decode(),
        }

        print(f"\n📝 Creating webhook {webhook_id}...")
        resp = await client.post(f"{BASE_URL}/api/webhooks", json=request)
        resp.raise_for_status()
        print(f"  Status: {resp.json()['status']}")

        # Creating again is idempotent
        resp = await client.post(f"{BASE_URL}/api/webhooks", json=request)
        print(f"  Repeat create: HTTP {resp.status_code}, status {resp.json()['status']}")

        # =====================================================================
        # Get: watch the attempts accumulate
        # =====================================================================
        print("\n🔁 Polling delivery state (target always answers 500)...")
        for _ in range(30):
            resp = await client.get(f"{BASE_URL}/api/webhooks/{webhook_id}")
            resp.raise_for_status()
            state = resp.json()
            print(f"  {state['status']:<9} attempts={len(state['attempts'])}")
            if state["status"] != "PENDING":
                break
            await asyncio.sleep(1.0)

        for i, attempt in enumerate(state["attempts"], 1):
            print(f"    #{i} {attempt['timestamp']}  {attempt['message']}")

        # =====================================================================
        # Validation errors
        # =====================================================================
        print("\n🚫 Sending an invalid request...")
        resp = await client.post(
            f"{BASE_URL}/api/webhooks",
            json={"id": "not-a-uuid", "target": "ftp://nowhere", "payload": "%%%"},
        )
        print(f"  HTTP {resp.status_code}: {resp.json()['error']['message']}")

        resp = await client.get(f"{BASE_URL}/api/webhooks/{uuid.uuid4()}")
        print(f"  Unknown id: HTTP {resp.status_code}")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
