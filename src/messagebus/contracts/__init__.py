"""Message contracts shared by the client and its transport adapters."""

from .envelope import API_VERSION, CONTENT_TYPE_BINARY, CONTENT_TYPE_JSON, MessageEnvelope

__all__ = ["API_VERSION", "CONTENT_TYPE_BINARY", "CONTENT_TYPE_JSON", "MessageEnvelope"]
