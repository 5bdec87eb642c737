"""Exception taxonomy for the message bus client.

Synchronous failures are raised to the caller. Asynchronous transport failures
are delivered on the client's error channel instead, and handler failures are
only logged (see ``MessageBusClient``).
"""

from __future__ import annotations


class MessageBusError(Exception):
    """Base class for all message bus client errors."""


class NotConnectedError(MessageBusError):
    """An operation needed a live connection but the client is disconnected."""

    def __init__(self, operation: str = "operation") -> None:
        super().__init__(f"Cannot {operation}: MessageBus not connected")
        self.operation = operation


class SerializationError(MessageBusError):
    """A payload could not be encoded into envelope bytes."""


class TransportError(MessageBusError):
    """The underlying transport provider reported a failure."""


class RequestTimeoutError(TransportError):
    """A request did not receive its correlated response in time."""

    def __init__(self, request_topic: str, timeout: float) -> None:
        super().__init__(f"Request on {request_topic!r} timed out after {timeout}s")
        self.request_topic = request_topic
        self.timeout = timeout


class HandlerError(MessageBusError):
    """A subscription handler raised while processing a message."""

    def __init__(self, topic: str, cause: BaseException) -> None:
        super().__init__(f"Handler for topic {topic!r} failed: {cause}")
        self.topic = topic
        self.cause = cause


class AlreadySubscribedError(MessageBusError):
    """A topic pattern already has an active subscription on this client."""

    def __init__(self, topics: list[str]) -> None:
        super().__init__(f"Already subscribed to: {', '.join(topics)}")
        self.topics = topics


class ConfigurationError(MessageBusError):
    """The configuration cannot be mapped onto a transport provider."""


class ClientClosedError(MessageBusError):
    """The client was torn down and must be recreated."""


__all__ = [
    "MessageBusError",
    "NotConnectedError",
    "SerializationError",
    "TransportError",
    "RequestTimeoutError",
    "HandlerError",
    "AlreadySubscribedError",
    "ConfigurationError",
    "ClientClosedError",
]
