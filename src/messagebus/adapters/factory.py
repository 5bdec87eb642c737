from __future__ import annotations

from messagebus.config import MessageBusConfig
from messagebus.domain.ports import MessageClient
from messagebus.errors import ConfigurationError

from .mqtt_asyncio import AsyncioMQTTMessageClient

SUPPORTED_TYPES = ("mqtt",)


def new_message_client(config: MessageBusConfig) -> MessageClient:
    """Create the transport provider for ``config.type``.

    Raises:
        ConfigurationError: If no provider exists for the configured type
    """
    if config.type == "mqtt":
        return AsyncioMQTTMessageClient(config)
    raise ConfigurationError(
        f"Unsupported MessageBus type {config.type!r} (supported: {', '.join(SUPPORTED_TYPES)})"
    )
