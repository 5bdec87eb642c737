"""Basic publish/subscribe against a local broker.

Run a broker first (``docker run -p 1883:1883 eclipse-mosquitto:2.0``), then::

    python examples/basic.py
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

from messagebus import MessageBusClient, MessageBusConfig, MessageEnvelope
from messagebus.runtime.logging import configure_logging

logger = configure_logging(os.getenv("LOG_LEVEL", "INFO"), name="examples.basic", json=False)


async def handle(topic: str, message: MessageEnvelope) -> None:
    logger.info("Received on %s: %s", topic, message.payload.decode("utf-8", errors="replace"))


async def main() -> None:
    os.environ.setdefault("MESSAGEBUS_CLIENT_ID", "basic-example-client")
    config = MessageBusConfig.from_env()

    async with MessageBusClient(config) as client:
        client.health_check()
        logger.info("Client info: %s", client.get_client_info())

        await client.subscribe(["edgex/events/device/+", "edgex/test/message"], handle)

        for n in range(5):
            await client.publish(
                "edgex/events/device/sensor01",
                {
                    "deviceName": "sensor01",
                    "reading": 20.0 + n,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
            await asyncio.sleep(1)

        await client.publish_binary_data("edgex/test/message", b"raw bytes, no envelope")
        await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
