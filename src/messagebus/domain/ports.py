from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, Sequence

from messagebus.contracts.envelope import MessageEnvelope
from messagebus.runtime.channels import DeliveryChannel, ErrorChannel

MessageHandler = Callable[[str, MessageEnvelope], Awaitable[None]]
"""Subscription handler: receives the effective topic and the envelope.

Raising marks the message as failed; the failure is logged and delivery of
later messages continues.
"""


@dataclass(slots=True, frozen=True)
class TopicChannel:
    """A subscribed pattern and the channel its messages are delivered to."""

    topic: str
    messages: DeliveryChannel


class MessageClient(Protocol):
    """Transport provider performing the actual network I/O."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def publish(self, envelope: MessageEnvelope, topic: str) -> None: ...

    async def publish_binary_data(self, data: bytes, topic: str) -> None: ...

    async def subscribe(
        self, topic_channels: Sequence[TopicChannel], errors: ErrorChannel[Exception]
    ) -> None: ...

    async def unsubscribe(self, *topics: str) -> None: ...

    async def request(
        self,
        envelope: MessageEnvelope,
        request_topic: str,
        response_topic_prefix: str,
        timeout: float,
    ) -> MessageEnvelope: ...
