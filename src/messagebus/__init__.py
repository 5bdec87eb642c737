"""High-level asyncio client for EdgeX-style MessageBus operations.

Wraps an MQTT transport with connection management, envelope construction,
per-topic subscription fan-out, request/response, and orderly shutdown.
"""

from .client import MessageBusClient
from .config import MessageBusConfig
from .contracts.envelope import CONTENT_TYPE_BINARY, CONTENT_TYPE_JSON, MessageEnvelope
from .domain.ports import MessageClient, MessageHandler, TopicChannel
from .errors import (
    AlreadySubscribedError,
    ClientClosedError,
    ConfigurationError,
    HandlerError,
    MessageBusError,
    NotConnectedError,
    RequestTimeoutError,
    SerializationError,
    TransportError,
)
from .runtime.channels import ChannelClosed, DeliveryChannel, ErrorChannel
from .runtime.codec import create_message_envelope, encode_payload, new_correlation_id
from .version import VERSION, get_version, get_version_string

__version__ = VERSION

__all__ = [
    "AlreadySubscribedError",
    "CONTENT_TYPE_BINARY",
    "CONTENT_TYPE_JSON",
    "ChannelClosed",
    "ClientClosedError",
    "ConfigurationError",
    "DeliveryChannel",
    "ErrorChannel",
    "HandlerError",
    "MessageBusClient",
    "MessageBusConfig",
    "MessageBusError",
    "MessageClient",
    "MessageEnvelope",
    "MessageHandler",
    "NotConnectedError",
    "RequestTimeoutError",
    "SerializationError",
    "TopicChannel",
    "TransportError",
    "VERSION",
    "create_message_envelope",
    "encode_payload",
    "get_version",
    "get_version_string",
    "new_correlation_id",
]
