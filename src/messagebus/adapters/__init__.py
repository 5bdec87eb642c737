"""Transport provider implementations behind the ``MessageClient`` port."""

from .factory import SUPPORTED_TYPES, new_message_client
from .mqtt_asyncio import AsyncioMQTTMessageClient, topic_matches, validate_topic_filter

__all__ = [
    "AsyncioMQTTMessageClient",
    "SUPPORTED_TYPES",
    "new_message_client",
    "topic_matches",
    "validate_topic_filter",
]
