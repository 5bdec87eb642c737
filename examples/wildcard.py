"""Wildcard subscriptions report the concrete topic of each message.

    python examples/wildcard.py
"""

from __future__ import annotations

import asyncio
import os

import orjson

from messagebus import MessageBusClient, MessageBusConfig, MessageEnvelope
from messagebus.runtime.logging import configure_logging

logger = configure_logging(os.getenv("LOG_LEVEL", "INFO"), name="examples.wildcard", json=False)

TOPICS = [
    "edgex/events/core/device-virtual/sensor01",
    "edgex/events/core/device-virtual/sensor02",
    "edgex/events/device/camera01/image",
    "edgex/commands/sensor01/read",
]


async def on_event(topic: str, message: MessageEnvelope) -> None:
    logger.info("[events/#] %s -> %s", topic, orjson.loads(message.payload))


async def on_command(topic: str, message: MessageEnvelope) -> None:
    device = topic.split("/")[2]
    logger.info("[commands/+/read] command for %s (correlation_id=%s)", device, message.correlation_id)


async def main() -> None:
    config = MessageBusConfig(
        host=os.getenv("MESSAGEBUS_HOST", "localhost"),
        port=int(os.getenv("MESSAGEBUS_PORT", "1883")),
        client_id=os.getenv("MESSAGEBUS_CLIENT_ID", "wildcard-example-client"),
        qos=1,
    )

    async with MessageBusClient(config) as client:
        await client.subscribe_single("edgex/events/#", on_event)
        await client.subscribe_single("edgex/commands/+/read", on_command)
        logger.info("Subscribed to %s", client.get_subscribed_topics())

        for index, topic in enumerate(TOPICS):
            await client.publish(topic, {"index": index, "topic": topic})
        await asyncio.sleep(2)

        await client.unsubscribe("edgex/commands/+/read")
        await client.publish("edgex/commands/sensor01/read", {"ignored": True})
        await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
