"""High-level client for EdgeX-style MessageBus operations.

This module wraps a transport provider (see ``messagebus.domain.ports``) with
connection state bookkeeping, envelope construction, and per-topic fan-out of
subscribed messages to caller-supplied handlers.

Concurrency model:
- One dispatch task per subscribed pattern, each draining its own bounded
  ``DeliveryChannel`` and awaiting the handler in-line (FIFO per pattern, no
  ordering across patterns).
- One shared ``ErrorChannel`` receives asynchronous transport errors for every
  subscription; dispatch tasks log what they pull from it.
- ``disconnect()`` sets the shutdown event, joins every dispatch task, waits for
  in-flight publishes and requests, and only then releases the transport.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Iterator, Optional

from messagebus.adapters import new_message_client
from messagebus.config import MessageBusConfig
from messagebus.contracts.envelope import MessageEnvelope
from messagebus.domain.ports import MessageClient, MessageHandler, TopicChannel
from messagebus.errors import (
    AlreadySubscribedError,
    ClientClosedError,
    HandlerError,
    MessageBusError,
    NotConnectedError,
    TransportError,
)
from messagebus.runtime.channels import (
    DEFAULT_DELIVERY_CAPACITY,
    DEFAULT_ERROR_CAPACITY,
    ChannelClosed,
    DeliveryChannel,
    ErrorChannel,
)
from messagebus.runtime.codec import create_message_envelope
from messagebus.runtime.logging import Logger


@dataclass(slots=True)
class _Subscription:
    topic: str
    channel: DeliveryChannel
    handler: MessageHandler
    task: Optional[asyncio.Task[None]] = None


class MessageBusClient:
    """Client owning one transport connection and its subscriptions.

    Example:
        ```python
        config = MessageBusConfig(host="localhost", port=1883, client_id="gateway")
        async with MessageBusClient(config) as client:
            async def handle(topic: str, message: MessageEnvelope) -> None:
                print(topic, message.payload)

            await client.subscribe_single("edgex/events/#", handle)
            await client.publish("edgex/events/device/sensor01", {"temperature": 25.6})
        ```

    A client that has been disconnected is not reusable; create a new one.
    """

    def __init__(
        self,
        config: MessageBusConfig,
        *,
        logger: Optional[Logger] = None,
        message_client: Optional[MessageClient] = None,
        channel_capacity: int = DEFAULT_DELIVERY_CAPACITY,
        error_capacity: int = DEFAULT_ERROR_CAPACITY,
    ) -> None:
        """Create a client; the transport connection is opened by ``connect()``.

        Args:
            config: Connection settings
            logger: Logger for client diagnostics (defaults to this module's logger)
            message_client: Transport provider; built from ``config.type`` when omitted
            channel_capacity: Capacity of each per-topic delivery channel
            error_capacity: Capacity of the shared error channel

        Raises:
            ConfigurationError: If no provider exists for ``config.type``
        """
        self._config = config
        self._logger: Logger = logger if logger is not None else logging.getLogger(__name__)
        self._client = message_client if message_client is not None else new_message_client(config)
        self._channel_capacity = channel_capacity

        self._lock = asyncio.Lock()
        self._connected = False
        self._closed = False
        self._subscriptions: dict[str, _Subscription] = {}
        self._errors: ErrorChannel[Exception] = ErrorChannel(error_capacity)
        self._stop = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()
        self._inflight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._released = asyncio.Event()

    @property
    def config(self) -> MessageBusConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def connected(self) -> bool:
        return self._connected

    async def __aenter__(self) -> MessageBusClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    # --- Connection state ---

    async def connect(self) -> None:
        """Connect to the MessageBus. No-op when already connected.

        Raises:
            ClientClosedError: If the client was already torn down
            TransportError: If the provider fails to connect
        """
        async with self._lock:
            if self._closed or self._stop.is_set():
                raise ClientClosedError("MessageBus client was disconnected; create a new client")
            if self._connected:
                self._logger.debug("MessageBus client already connected")
                return

            self._logger.info("Connecting to EdgeX MessageBus at %s", self._config.broker_url)
            with self._transport_errors("connect to MessageBus"):
                await self._client.connect()
            self._connected = True
            self._logger.info("Connected to EdgeX MessageBus")

    async def disconnect(self) -> None:
        """Stop all dispatch tasks, then release the transport connection.

        No-op when not connected. Blocks until every dispatch task has exited
        (bounded by ``config.shutdown_timeout`` when set).

        Called from a handler, the calling dispatch task is not waited for; it
        exits once the handler returns. While a disconnect is running, handlers
        calling ``subscribe``, ``unsubscribe`` or ``connect`` fail fast instead
        of waiting for it.

        Raises:
            TransportError: If the provider fails to disconnect
        """
        if self._stop.is_set():
            if asyncio.current_task() not in self._tasks:
                await self._released.wait()
            return
        async with self._lock:
            if not self._connected or self._stop.is_set():
                return
            self._stop.set()

        # Joined without the lock: running handlers may still call back in.
        try:
            await self._join_dispatch_tasks()
            async with self._lock:
                for subscription in self._subscriptions.values():
                    subscription.channel.close()
                self._subscriptions.clear()
                self._connected = False
                self._closed = True
            await self._idle.wait()

            with self._transport_errors("disconnect from MessageBus"):
                await self._client.disconnect()
            self._logger.info("Disconnected from EdgeX MessageBus")
        finally:
            self._released.set()

    async def _join_dispatch_tasks(self) -> None:
        tasks = set(self._tasks)
        tasks.discard(asyncio.current_task())
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=self._config.shutdown_timeout)
        if pending:
            self._logger.warning(
                "%d dispatch task(s) still running after %.1fs, cancelling",
                len(pending),
                self._config.shutdown_timeout,
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def health_check(self) -> None:
        """Raises ``NotConnectedError`` when the client is not connected."""
        if not self._connected:
            raise NotConnectedError("pass health check")

    def get_client_info(self) -> dict[str, Any]:
        return {
            "connected": self._connected,
            "subscribed_topics": len(self._subscriptions),
            "error_channel_buffer": self._errors.qsize(),
            "client_id": self._config.client_id,
            "broker": self._config.broker_url,
            "transport": self._config.type,
        }

    # --- Publishing ---

    def create_message_envelope(self, data: Any, correlation_id: str = "") -> MessageEnvelope:
        return create_message_envelope(data, correlation_id)

    async def publish(self, topic: str, data: Any) -> None:
        """Publish ``data`` wrapped in a new envelope.

        Raises:
            NotConnectedError: If not connected
            SerializationError: If ``data`` cannot be encoded
            TransportError: If the provider rejects the publish
        """
        async with self._operation("publish"):
            await self._publish(create_message_envelope(data), topic)

    async def publish_with_correlation_id(self, topic: str, data: Any, correlation_id: str) -> None:
        async with self._operation("publish"):
            await self._publish(create_message_envelope(data, correlation_id), topic)

    async def publish_envelope(self, envelope: MessageEnvelope, topic: str) -> None:
        async with self._operation("publish"):
            await self._publish(envelope, topic)

    async def publish_binary_data(self, topic: str, data: bytes) -> None:
        """Publish raw bytes without an envelope."""
        async with self._operation("publish"):
            with self._transport_errors(f"publish binary data to topic {topic!r}"):
                await self._client.publish_binary_data(data, topic)
            self._logger.debug("Published binary data to topic: %s", topic)

    async def _publish(self, envelope: MessageEnvelope, topic: str) -> None:
        with self._transport_errors(f"publish message to topic {topic!r}"):
            await self._client.publish(envelope, topic)
        self._logger.debug(
            "Published message to topic: %s (correlation_id=%s)", topic, envelope.correlation_id
        )

    async def request(
        self,
        envelope: MessageEnvelope,
        request_topic: str,
        response_topic_prefix: str,
        timeout: float,
    ) -> MessageEnvelope:
        """Publish a request and wait for its correlated response.

        Raises:
            NotConnectedError: If not connected
            RequestTimeoutError: If no response arrives within ``timeout`` seconds
            TransportError: If the provider fails
        """
        async with self._operation("request"):
            with self._transport_errors(f"request on topic {request_topic!r}"):
                response = await self._client.request(
                    envelope, request_topic, response_topic_prefix, timeout
                )
        self._logger.debug("Request on %s answered (correlation_id=%s)", request_topic, response.correlation_id)
        return response

    # --- Subscriptions ---

    async def subscribe(self, topics: Iterable[str], handler: MessageHandler) -> None:
        """Subscribe to topic patterns and dispatch their messages to ``handler``.

        One dispatch task is started per pattern. Returns once the tasks are
        started; it does not wait for messages.

        Raises:
            NotConnectedError: If not connected
            AlreadySubscribedError: If any pattern is already subscribed
            TransportError: If the provider rejects the batch (no task is started)
        """
        patterns = list(dict.fromkeys([topics] if isinstance(topics, str) else topics))
        if not patterns:
            raise ValueError("At least one topic is required")

        async with self._lock:
            if not self._connected or self._stop.is_set():
                raise NotConnectedError("subscribe")
            existing = [pattern for pattern in patterns if pattern in self._subscriptions]
            if existing:
                raise AlreadySubscribedError(existing)

            subscriptions = [
                _Subscription(pattern, DeliveryChannel(pattern, self._channel_capacity), handler)
                for pattern in patterns
            ]
            with self._transport_errors(f"subscribe to topics {patterns}"):
                await self._client.subscribe(
                    [TopicChannel(s.topic, s.channel) for s in subscriptions], self._errors
                )

            for subscription in subscriptions:
                self._subscriptions[subscription.topic] = subscription
                task = asyncio.create_task(
                    self._handle_messages(subscription), name=f"messagebus-dispatch:{subscription.topic}"
                )
                subscription.task = task
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

        self._logger.info("Subscribed to topics: %s", patterns)

    async def subscribe_single(self, topic: str, handler: MessageHandler) -> None:
        await self.subscribe([topic], handler)

    async def unsubscribe(self, *topics: str) -> None:
        """Unsubscribe patterns; their dispatch tasks drain and exit.

        Raises:
            NotConnectedError: If not connected
            TransportError: If the provider fails to unsubscribe
        """
        async with self._lock:
            if not self._connected or self._stop.is_set():
                raise NotConnectedError("unsubscribe")
            with self._transport_errors(f"unsubscribe from topics {list(topics)}"):
                await self._client.unsubscribe(*topics)
            for topic in topics:
                subscription = self._subscriptions.pop(topic, None)
                if subscription is not None:
                    subscription.channel.close()

        self._logger.info("Unsubscribed from topics: %s", list(topics))

    def get_subscribed_topics(self) -> list[str]:
        return list(self._subscriptions)

    def get_error_channel(self) -> ErrorChannel[Exception]:
        """Shared channel of asynchronous transport errors.

        Best-effort: errors are dropped when nobody drains it and it is full.
        """
        return self._errors

    # --- Dispatch ---

    async def _handle_messages(self, subscription: _Subscription) -> None:
        topic = subscription.topic
        self._logger.debug("Start handling messages for topic %s", topic)

        while True:
            receive = asyncio.ensure_future(subscription.channel.get())
            error = asyncio.ensure_future(self._errors.get())
            stop = asyncio.ensure_future(self._stop.wait())
            try:
                done, _ = await asyncio.wait({receive, error, stop}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for fut in (receive, error, stop):
                    if not fut.done():
                        fut.cancel()

            if error in done:
                self._logger.error("MessageBus subscription error: %s", error.result())

            if receive in done:
                try:
                    envelope = receive.result()
                except ChannelClosed:
                    self._logger.debug("Message channel for topic %s closed", topic)
                    return
                await self._deliver(subscription, envelope)

            if stop in done:
                self._logger.debug("Stop handling messages for topic %s", topic)
                return

    async def _deliver(self, subscription: _Subscription, envelope: MessageEnvelope) -> None:
        effective_topic = envelope.received_topic or subscription.topic
        try:
            await subscription.handler(effective_topic, envelope)
        except Exception as exc:
            failure = HandlerError(effective_topic, exc)
            self._logger.error(
                "Error handling message on topic %s: %s",
                effective_topic,
                failure,
                exc_info=exc,
            )

    # --- Helpers ---

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        """Guard a publish/request: fail fast when disconnected, else count it in flight."""
        if not self._connected:
            raise NotConnectedError(name)
        self._inflight += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._inflight -= 1
            if self._inflight == 0:
                self._idle.set()

    @contextmanager
    def _transport_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except MessageBusError:
            raise
        except Exception as exc:
            self._logger.error("Failed to %s: %s", action, exc)
            raise TransportError(f"Failed to {action}: {exc}") from exc


__all__ = ["MessageBusClient"]
