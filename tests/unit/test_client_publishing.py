"""Unit tests for MessageBusClient publish and request operations."""

import asyncio

import orjson
import pytest

from messagebus.contracts.envelope import CONTENT_TYPE_JSON, MessageEnvelope
from messagebus.errors import (
    NotConnectedError,
    RequestTimeoutError,
    SerializationError,
    TransportError,
)


class TestPublish:
    """Tests for publish() and its variants."""

    @pytest.mark.asyncio
    async def test_publish_not_connected(self, make_client, fake_transport):
        client = make_client()
        with pytest.raises(NotConnectedError, match="Cannot publish"):
            await client.publish("a/b", {"x": 1})
        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_publish_builds_envelope(self, make_client, fake_transport):
        client = make_client()
        await client.connect()

        await client.publish("edgex/events/device/sensor01", {"temperature": 25.6})

        envelope, topic = fake_transport.published[0]
        assert topic == "edgex/events/device/sensor01"
        assert orjson.loads(envelope.payload) == {"temperature": 25.6}
        assert envelope.content_type == CONTENT_TYPE_JSON
        assert envelope.correlation_id.startswith("MessageBus-")

    @pytest.mark.asyncio
    async def test_publish_bytes_untouched(self, make_client, fake_transport):
        client = make_client()
        await client.connect()

        await client.publish("a/b", b"\x01\x02")

        assert fake_transport.published[0][0].payload == b"\x01\x02"

    @pytest.mark.asyncio
    async def test_publish_serialization_error(self, make_client, fake_transport):
        """Encoding failures surface before the transport is touched."""
        client = make_client()
        await client.connect()

        with pytest.raises(SerializationError):
            await client.publish("a/b", object())

        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_publish_transport_error(self, make_client, fake_transport, capture_logger):
        client = make_client()
        await client.connect()
        fake_transport.failures["publish"] = ConnectionError("broker went away")

        with pytest.raises(TransportError, match="broker went away") as exc_info:
            await client.publish("a/b", {"x": 1})

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert any("a/b" in text for text in capture_logger.texts("error"))

    @pytest.mark.asyncio
    async def test_publish_with_correlation_id(self, make_client, fake_transport):
        client = make_client()
        await client.connect()

        await client.publish_with_correlation_id("a/b", {"x": 1}, "trace-7")

        assert fake_transport.published[0][0].correlation_id == "trace-7"

    @pytest.mark.asyncio
    async def test_publish_envelope_as_is(self, make_client, fake_transport):
        client = make_client()
        await client.connect()
        envelope = MessageEnvelope(correlation_id="fixed", request_id="r", payload=b"{}")

        await client.publish_envelope(envelope, "a/b")

        assert fake_transport.published == [(envelope, "a/b")]

    @pytest.mark.asyncio
    async def test_publish_binary_data(self, make_client, fake_transport):
        client = make_client()
        await client.connect()

        await client.publish_binary_data("raw/topic", b"\xde\xad")

        assert fake_transport.binary == [(b"\xde\xad", "raw/topic")]
        assert fake_transport.published == []

    @pytest.mark.asyncio
    async def test_publish_binary_not_connected(self, make_client):
        with pytest.raises(NotConnectedError):
            await make_client().publish_binary_data("raw/topic", b"x")

    @pytest.mark.asyncio
    async def test_publish_binary_transport_error(self, make_client, fake_transport):
        client = make_client()
        await client.connect()
        fake_transport.failures["publish_binary_data"] = OSError("boom")

        with pytest.raises(TransportError):
            await client.publish_binary_data("raw/topic", b"x")

    def test_create_message_envelope(self, make_client):
        envelope = make_client().create_message_envelope("hello", "corr")
        assert envelope.payload == b"hello"
        assert envelope.correlation_id == "corr"

    @pytest.mark.asyncio
    async def test_publish_racing_disconnect(self, make_client, fake_transport):
        """Each publish racing disconnect either completes or fails fast.

        None of them reach a released transport.
        """
        client = make_client()
        await client.connect()

        async def publish(n):
            await asyncio.sleep(0.001 * (n % 5))
            await client.publish("race/topic", {"n": n})

        publishes = [asyncio.create_task(publish(n)) for n in range(50)]
        await asyncio.sleep(0.002)
        await client.disconnect()
        results = await asyncio.gather(*publishes, return_exceptions=True)

        for result in results:
            assert result is None or isinstance(result, NotConnectedError)
        succeeded = sum(1 for result in results if result is None)
        assert succeeded == len(fake_transport.published)
        assert fake_transport.disconnect_calls == 1


class TestRequest:
    """Tests for request()."""

    @pytest.mark.asyncio
    async def test_request_not_connected(self, make_client):
        envelope = MessageEnvelope(correlation_id="c", request_id="r")
        with pytest.raises(NotConnectedError, match="Cannot request"):
            await make_client().request(envelope, "svc/request", "svc/response", 1.0)

    @pytest.mark.asyncio
    async def test_request_returns_response(self, make_client, fake_transport):
        client = make_client()
        await client.connect()
        response = MessageEnvelope(correlation_id="c", request_id="r", payload=b'{"ok": true}')
        fake_transport.responses["svc/request"] = response

        envelope = MessageEnvelope(correlation_id="c", request_id="r")
        result = await client.request(envelope, "svc/request", "svc/response", 1.0)

        assert result == response
        assert fake_transport.published == [(envelope, "svc/request")]

    @pytest.mark.asyncio
    async def test_request_timeout(self, make_client):
        client = make_client()
        await client.connect()
        envelope = MessageEnvelope(correlation_id="c", request_id="r")

        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.request(envelope, "svc/request", "svc/response", 0.01)

        assert exc_info.value.request_topic == "svc/request"
        assert isinstance(exc_info.value, TransportError)

    @pytest.mark.asyncio
    async def test_request_provider_failure(self, make_client, fake_transport):
        client = make_client()
        await client.connect()
        fake_transport.failures["request"] = RuntimeError("no route")
        envelope = MessageEnvelope(correlation_id="c", request_id="r")

        with pytest.raises(TransportError, match="no route"):
            await client.request(envelope, "svc/request", "svc/response", 1.0)

    @pytest.mark.asyncio
    async def test_disconnect_waits_for_request(self, make_client, fake_transport):
        """An in-flight request finishes before the transport is released."""
        client = make_client()
        await client.connect()
        envelope = MessageEnvelope(correlation_id="c", request_id="r")
        pending = asyncio.create_task(client.request(envelope, "svc/request", "svc/response", 0.05))
        await asyncio.sleep(0)

        await client.disconnect()

        assert pending.done()
        with pytest.raises(RequestTimeoutError):
            pending.result()
        assert fake_transport.disconnect_calls == 1
