"""
Basic Usage Example

This example runs a tiny subscribe endpoint locally and shows:
- Authorizing a subscriber through a token fetcher
- Receiving event batches (empty batches are heartbeats)
- Reconnecting after the server drops the connection
- Replaying cached batches on reconnect

Run with: python examples/basic_usage.py
"""

import asyncio
import json
import logging
import time

import jwt
from websockets.asyncio.server import ServerConnection, serve

from exoquic import ConnectionSettings, SubscriptionManager

logging.basicConfig(level=logging.INFO)

# =============================================================================
# Step 1: A local subscribe endpoint
# =============================================================================
# The first connection receives two batches and is dropped with code 1011.
# The second one receives a heartbeat and one more batch, then closes cleanly.

BATCHES = [
    [[{"id": 1, "type": "OrderPlaced"}], [{"id": 2, "type": "OrderPaid"}]],
    [[], [{"id": 3, "type": "OrderShipped"}]],
]


async def subscribe_endpoint(connection: ServerConnection) -> None:
    script = BATCHES.pop(0)
    for batch in script:
        await connection.send(json.dumps(batch))
        await asyncio.sleep(0.1)
    if BATCHES:
        await connection.close(1011, "server restarting")
    else:
        await connection.close(1000, "end of demo")


def accept_token(connection, subprotocols):
    return subprotocols[0] if subprotocols else None


# =============================================================================
# Step 2: A token fetcher
# =============================================================================
# In a real application this calls your backend, which signs the token.


def fetch_token(request: dict) -> str:
    claims = {
        "topic": request["topic"],
        "channel": request["channel"],
        "subscriptionId": "demo-subscription",
        "exp": int(time.time()) + 3600,
    }
    return jwt.encode(claims, "demo-secret-not-for-production-use", algorithm="HS256")


# =============================================================================
# Step 3: Subscribe
# =============================================================================


async def main() -> None:
    async with serve(subscribe_endpoint, "127.0.0.1", 0, select_subprotocol=accept_token) as server:
        port = server.sockets[0].getsockname()[1]

        async with SubscriptionManager(
            fetch_token,
            subscribe_url=f"ws://127.0.0.1:{port}/subscribe",
            settings=ConnectionSettings(reconnect_delay=0.5),
            enable_tracing=False,
        ) as manager:
            subscriber = await manager.authorize_subscriber({"topic": "orders", "channel": "eu"})

            def on_batch(batch: list) -> None:
                print(f"Received: {[event['type'] for event in batch]}")

            await subscriber.subscribe(on_batch)
            await subscriber.wait_closed()

            # The second session replays OrderPlaced and OrderPaid before OrderShipped.
            print(f"Reconnect attempts: {subscriber.reconnect_attempts}")


if __name__ == "__main__":
    asyncio.run(main())
