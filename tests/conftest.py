"""Shared pytest fixtures for messagebus tests."""

from __future__ import annotations

import asyncio
import os
from types import SimpleNamespace
from typing import Any, Callable, Iterable, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from messagebus.adapters.mqtt_asyncio import validate_topic_filter
from messagebus.client import MessageBusClient
from messagebus.config import MessageBusConfig
from messagebus.contracts.envelope import MessageEnvelope
from messagebus.domain.ports import TopicChannel
from messagebus.errors import RequestTimeoutError
from messagebus.runtime.channels import ErrorChannel


class FakeMessageClient:
    """In-memory transport provider recording every call.

    Set ``failures["<operation>"]`` to make the next call of that operation
    raise. ``on_disconnect`` runs right before the disconnect is recorded.
    """

    def __init__(self) -> None:
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.subscribe_calls = 0
        self.published: list[tuple[MessageEnvelope, str]] = []
        self.binary: list[tuple[bytes, str]] = []
        self.topic_channels: dict[str, TopicChannel] = {}
        self.unsubscribed: list[str] = []
        self.errors: Optional[ErrorChannel[Exception]] = None
        self.responses: dict[str, MessageEnvelope] = {}
        self.failures: dict[str, Exception] = {}
        self.on_disconnect: Optional[Callable[[], None]] = None
        self.released = False

    def _maybe_fail(self, operation: str) -> None:
        failure = self.failures.pop(operation, None)
        if failure is not None:
            raise failure

    async def connect(self) -> None:
        self._maybe_fail("connect")
        self.connect_calls += 1

    async def disconnect(self) -> None:
        self._maybe_fail("disconnect")
        if self.on_disconnect is not None:
            self.on_disconnect()
        self.disconnect_calls += 1
        self.released = True

    async def publish(self, envelope: MessageEnvelope, topic: str) -> None:
        await asyncio.sleep(0)
        if self.released:
            raise RuntimeError("publish on released transport")
        self._maybe_fail("publish")
        self.published.append((envelope, topic))

    async def publish_binary_data(self, data: bytes, topic: str) -> None:
        self._maybe_fail("publish_binary_data")
        self.binary.append((data, topic))

    async def subscribe(
        self, topic_channels: Sequence[TopicChannel], errors: ErrorChannel[Exception]
    ) -> None:
        self._maybe_fail("subscribe")
        for topic_channel in topic_channels:
            validate_topic_filter(topic_channel.topic)
        self.subscribe_calls += 1
        for topic_channel in topic_channels:
            self.topic_channels[topic_channel.topic] = topic_channel
        self.errors = errors

    async def unsubscribe(self, *topics: str) -> None:
        self._maybe_fail("unsubscribe")
        self.unsubscribed.extend(topics)
        for topic in topics:
            self.topic_channels.pop(topic, None)

    async def request(
        self,
        envelope: MessageEnvelope,
        request_topic: str,
        response_topic_prefix: str,
        timeout: float,
    ) -> MessageEnvelope:
        self._maybe_fail("request")
        self.published.append((envelope, request_topic))
        response = self.responses.get(request_topic)
        if response is None:
            await asyncio.sleep(timeout)
            raise RequestTimeoutError(request_topic, timeout)
        return response

    async def deliver(self, pattern: str, envelope: MessageEnvelope) -> None:
        """Push an inbound message the way a transport would."""
        await self.topic_channels[pattern].messages.put(envelope)


class CaptureLogger:
    """Logger double recording every call by level."""

    def __init__(self) -> None:
        self.records: dict[str, list[dict[str, Any]]] = {
            "debug": [],
            "info": [],
            "warning": [],
            "error": [],
        }

    def _record(self, level: str, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        self.records[level].append({"msg": msg, "args": args, "kwargs": kwargs, "text": msg % args if args else msg})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._record("debug", msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._record("info", msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._record("warning", msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._record("error", msg, args, kwargs)

    def texts(self, level: str) -> list[str]:
        return [record["text"] for record in self.records[level]]


@pytest.fixture
def config() -> MessageBusConfig:
    """Default configuration for unit tests."""
    return MessageBusConfig(host="localhost", port=1883, client_id="test-client")


@pytest.fixture
def fake_transport() -> FakeMessageClient:
    return FakeMessageClient()


@pytest.fixture
def capture_logger() -> CaptureLogger:
    return CaptureLogger()


@pytest.fixture
def make_client(config, fake_transport, capture_logger) -> Callable[..., MessageBusClient]:
    """Factory building a client wired to the fake transport.

    Example:
        async def test_publish(make_client, fake_transport):
            client = make_client()
            await client.connect()
            await client.publish("a/b", {"x": 1})
            assert fake_transport.published
    """

    def factory(**kwargs: Any) -> MessageBusClient:
        cfg = kwargs.pop("config", config)
        return MessageBusClient(
            cfg,
            logger=kwargs.pop("logger", capture_logger),
            message_client=kwargs.pop("message_client", fake_transport),
            **kwargs,
        )

    return factory


def _message_stream(messages: Iterable[Any], *, hold_open: bool = False) -> MagicMock:
    """Mock of ``asyncio_mqtt.Client.messages()`` yielding ``messages``.

    With ``hold_open`` the stream stays open after the last message, like a
    live broker connection.
    """

    async def iterate():
        for message in messages:
            yield message
        if hold_open:
            await asyncio.Event().wait()

    context = MagicMock()
    context.__aenter__ = AsyncMock(side_effect=lambda *args: iterate())
    context.__aexit__ = AsyncMock(return_value=None)
    return context


def _mqtt_message(topic: str, payload: bytes) -> SimpleNamespace:
    return SimpleNamespace(topic=topic, payload=payload)


@pytest.fixture
def message_stream() -> Callable[..., MagicMock]:
    return _message_stream


@pytest.fixture
def mqtt_message() -> Callable[[str, bytes], SimpleNamespace]:
    return _mqtt_message


@pytest.fixture
def mock_mqtt_client():
    """Mock asyncio_mqtt.Client for unit testing.

    Returns a MagicMock configured with async methods for MQTT operations and
    an empty message stream that stays open until disconnect.
    """
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.subscribe = AsyncMock()
    client.unsubscribe = AsyncMock()
    client.publish = AsyncMock()
    client.messages = MagicMock(return_value=_message_stream([], hold_open=True))
    return client


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    """Clear MESSAGEBUS_* variables so tests start from a clean environment."""
    for var in list(os.environ):
        if var.startswith("MESSAGEBUS_"):
            monkeypatch.delenv(var, raising=False)


@pytest.fixture(scope="session")
def mosquitto_url() -> Optional[str]:
    """Broker for integration tests, taken from INTEGRATION_MQTT_URL."""
    return os.getenv("INTEGRATION_MQTT_URL")


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires MQTT broker)"
    )
