"""Request/response between a responder and a requester on one client.

The responder answers on ``<response prefix>/<request id>``, which is where
``MessageBusClient.request`` waits for the reply.

    python examples/request_response.py
"""

from __future__ import annotations

import asyncio
import os
import uuid

import orjson

from messagebus import (
    MessageBusClient,
    MessageBusConfig,
    MessageEnvelope,
    RequestTimeoutError,
)
from messagebus.runtime.logging import configure_logging

logger = configure_logging(os.getenv("LOG_LEVEL", "INFO"), name="examples.request", json=False)

REQUEST_TOPIC = "edgex/core/command/request/sensor01"
RESPONSE_PREFIX = "edgex/core/command/response"


async def main() -> None:
    os.environ.setdefault("MESSAGEBUS_CLIENT_ID", "request-example-client")
    config = MessageBusConfig.from_env()

    async with MessageBusClient(config) as client:

        async def respond(topic: str, request: MessageEnvelope) -> None:
            command = orjson.loads(request.payload)
            logger.info("Responder got %s on %s", command, topic)
            reply = MessageEnvelope(
                correlation_id=request.correlation_id,
                request_id=request.request_id,
                payload=orjson.dumps({"deviceId": "sensor01", "success": True, "value": 23.4}),
            )
            await client.publish_envelope(reply, f"{RESPONSE_PREFIX}/{request.request_id}")

        await client.subscribe_single(REQUEST_TOPIC, respond)

        envelope = client.create_message_envelope({"command": "read", "parameters": {"unit": "C"}})
        request = envelope.model_copy(update={"request_id": str(uuid.uuid4())})
        try:
            response = await client.request(request, REQUEST_TOPIC, RESPONSE_PREFIX, timeout=5.0)
        except RequestTimeoutError as exc:
            logger.error("No response: %s", exc)
            return
        logger.info("Response: %s", orjson.loads(response.payload))


if __name__ == "__main__":
    asyncio.run(main())
