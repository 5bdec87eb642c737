"""MQTT transport provider backed by asyncio-mqtt.

The provider owns the broker connection and a single pump task that reads the
client's message stream. Each inbound message is decoded into a
``MessageEnvelope`` and pushed onto every registered ``TopicChannel`` whose
pattern matches the concrete topic. Responses to in-flight requests are
resolved before any routing happens.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Optional, Sequence

import asyncio_mqtt as mqtt

from messagebus.config import MessageBusConfig
from messagebus.contracts.envelope import CONTENT_TYPE_BINARY, MessageEnvelope
from messagebus.domain.ports import TopicChannel
from messagebus.errors import NotConnectedError, RequestTimeoutError, TransportError
from messagebus.runtime.channels import ChannelClosed, ErrorChannel

logger = logging.getLogger(__name__)


def validate_topic_filter(pattern: str) -> None:
    """Check MQTT topic filter syntax.

    Raises:
        ValueError: If the filter is empty, ``#`` is not the whole last level,
            or ``+`` does not occupy a whole level
    """
    if not pattern:
        raise ValueError("Topic filter must not be empty")
    levels = pattern.split("/")
    for index, level in enumerate(levels):
        if "#" in level and (level != "#" or index != len(levels) - 1):
            raise ValueError(f"Invalid topic filter {pattern!r}: '#' must be the last level")
        if "+" in level and level != "+":
            raise ValueError(f"Invalid topic filter {pattern!r}: '+' must occupy a whole level")


def topic_matches(topic: str, pattern: str) -> bool:
    """Check if a concrete topic matches an MQTT topic filter.

    Supports:
    - + for single level wildcard (e.g., "edgex/+/device" matches "edgex/events/device")
    - # for multi-level wildcard (e.g., "edgex/events/#" matches "edgex/events/device/sensor01"
      and "edgex/events" itself)

    Topics starting with ``$`` never match a leading wildcard.
    """
    if pattern == topic:
        return True

    topic_parts = topic.split("/")
    pattern_parts = pattern.split("/")

    if topic.startswith("$") and pattern_parts[0] in ("+", "#"):
        return False

    for index, part in enumerate(pattern_parts):
        if part == "#":
            return True
        if index >= len(topic_parts):
            return False
        if part != "+" and part != topic_parts[index]:
            return False

    return len(topic_parts) == len(pattern_parts)


class AsyncioMQTTMessageClient:
    """``MessageClient`` implementation on top of ``asyncio_mqtt.Client``.

    Client id, credentials and QoS come from ``MessageBusConfig.provider_options()``.

    A single pump task routes every inbound message, and it waits on a full
    delivery channel before reading the next one. A handler that stalls on one
    pattern therefore holds up delivery to every other pattern, and to request
    responses as well. Handlers that issue ``request`` should not let their own
    channel fill up.
    """

    def __init__(self, config: MessageBusConfig) -> None:
        self._config = config
        self._options = config.provider_options()
        self._qos = int(self._options.get("Qos", "0"))
        self._client: Optional[mqtt.Client] = None
        self._pump_task: Optional[asyncio.Task[None]] = None
        self._routes: dict[str, TopicChannel] = {}
        self._error_channels: list[ErrorChannel[Exception]] = []
        self._pending: dict[str, asyncio.Future[MessageEnvelope]] = {}

    @property
    def client(self) -> Optional[mqtt.Client]:
        """Underlying asyncio-mqtt client, None while disconnected."""
        return self._client

    # --- Lifecycle ---

    async def connect(self) -> None:
        if self._client is not None:
            return

        config = self._config
        client = mqtt.Client(
            hostname=config.host,
            port=config.port,
            username=self._options.get("Username"),
            password=self._options.get("Password"),
            client_id=self._options["ClientId"],
            keepalive=config.keepalive,
            transport="websockets" if config.uses_websockets else "tcp",
            tls_context=ssl.create_default_context() if config.uses_tls else None,
        )
        await client.__aenter__()
        self._client = client
        self._pump_task = asyncio.create_task(self._pump(client))

        logger.info(
            "Connected to MQTT broker at %s (client_id=%s)", config.broker_url, config.client_id
        )

    async def disconnect(self) -> None:
        if self._client is None:
            return

        if self._pump_task:
            self._pump_task.cancel()
            try:
                await asyncio.wait_for(self._pump_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._pump_task = None

        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError("Disconnected while awaiting response"))
        self._pending.clear()
        self._routes.clear()
        self._error_channels.clear()

        client, self._client = self._client, None
        await client.__aexit__(None, None, None)
        logger.info("Disconnected from MQTT broker")

    # --- Publishing ---

    async def publish(self, envelope: MessageEnvelope, topic: str) -> None:
        client = self._require_client("publish")
        await client.publish(topic, envelope.to_wire(), qos=self._qos)

    async def publish_binary_data(self, data: bytes, topic: str) -> None:
        client = self._require_client("publish")
        await client.publish(topic, bytes(data), qos=self._qos)

    # --- Subscriptions ---

    async def subscribe(
        self, topic_channels: Sequence[TopicChannel], errors: ErrorChannel[Exception]
    ) -> None:
        client = self._require_client("subscribe")
        for topic_channel in topic_channels:
            validate_topic_filter(topic_channel.topic)

        # Routes go in first so retained messages delivered right after the
        # SUBACK find their channel.
        for topic_channel in topic_channels:
            self._routes[topic_channel.topic] = topic_channel
        try:
            await client.subscribe([(tc.topic, self._qos) for tc in topic_channels])
        except Exception:
            for topic_channel in topic_channels:
                self._routes.pop(topic_channel.topic, None)
            raise

        if not any(existing is errors for existing in self._error_channels):
            self._error_channels.append(errors)

    async def unsubscribe(self, *topics: str) -> None:
        client = self._require_client("unsubscribe")
        await client.unsubscribe(list(topics))
        for topic in topics:
            self._routes.pop(topic, None)

    # --- Request / response ---

    async def request(
        self,
        envelope: MessageEnvelope,
        request_topic: str,
        response_topic_prefix: str,
        timeout: float,
    ) -> MessageEnvelope:
        client = self._require_client("request")
        request_id = envelope.request_id or envelope.correlation_id
        response_topic = f"{response_topic_prefix.rstrip('/')}/{request_id}"

        future: asyncio.Future[MessageEnvelope] = asyncio.get_running_loop().create_future()
        self._pending[response_topic] = future
        try:
            await client.subscribe(response_topic, qos=self._qos)
            await client.publish(request_topic, envelope.to_wire(), qos=self._qos)
            try:
                return await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                raise RequestTimeoutError(request_topic, timeout) from None
        finally:
            self._pending.pop(response_topic, None)
            if self._client is client:
                try:
                    await client.unsubscribe(response_topic)
                except mqtt.MqttError as exc:
                    logger.warning("Failed to unsubscribe response topic %s: %s", response_topic, exc)

    # --- Inbound ---

    async def _pump(self, client: mqtt.Client) -> None:
        try:
            async with client.messages() as messages:
                async for message in messages:
                    await self._route(message)
        except asyncio.CancelledError:
            logger.debug("Message pump cancelled")
            raise
        except Exception as exc:
            logger.error("Message pump error: %s", exc, exc_info=True)
            self._report(TransportError(f"Message stream failed: {exc}"))

    async def _route(self, message: mqtt.Message) -> None:
        topic = str(getattr(message.topic, "value", message.topic))
        envelope = self._decode(topic, message.payload)
        if envelope is None:
            return

        pending = self._pending.get(topic)
        if pending is not None:
            if not pending.done():
                pending.set_result(envelope)
            return

        matched = False
        for pattern, topic_channel in list(self._routes.items()):
            if not topic_matches(topic, pattern):
                continue
            matched = True
            try:
                await topic_channel.messages.put(envelope)
            except ChannelClosed:
                logger.debug("Channel for %s closed, dropping message on %s", pattern, topic)
        if not matched:
            logger.debug("No subscription for topic: %s", topic)

    @staticmethod
    def _decode(topic: str, payload: object) -> Optional[MessageEnvelope]:
        if isinstance(payload, (bytes, bytearray)):
            raw = bytes(payload)
        elif isinstance(payload, str):
            raw = payload.encode("utf-8")
        else:
            logger.warning("Unexpected payload type %s on %s, skipping", type(payload), topic)
            return None

        try:
            envelope = MessageEnvelope.from_wire(raw)
        except ValueError:
            envelope = MessageEnvelope(correlation_id="", payload=raw, content_type=CONTENT_TYPE_BINARY)
        return envelope.with_received_topic(topic)

    def _report(self, error: Exception) -> None:
        for errors in self._error_channels:
            errors.offer(error)

    def _require_client(self, operation: str) -> mqtt.Client:
        if self._client is None:
            raise NotConnectedError(operation)
        return self._client


__all__ = ["AsyncioMQTTMessageClient", "topic_matches", "validate_topic_filter"]
