"""Payload encoding and envelope construction.

Pure helpers: nothing here performs I/O.
"""

from __future__ import annotations

import uuid
from typing import Any

import orjson
from pydantic import BaseModel

from messagebus.contracts.envelope import CONTENT_TYPE_JSON, MessageEnvelope
from messagebus.errors import SerializationError

CORRELATION_ID_PREFIX = "MessageBus-"


def new_correlation_id() -> str:
    return f"{CORRELATION_ID_PREFIX}{uuid.uuid4()}"


def encode_payload(data: Any) -> bytes:
    """Turn an application value into payload bytes.

    Raw bytes pass through unchanged and text is UTF-8 encoded. Pydantic models
    are dumped first; everything else goes through orjson.

    Raises:
        SerializationError: If the value cannot be encoded as JSON
    """
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    try:
        return orjson.dumps(data)
    except TypeError as exc:
        raise SerializationError(f"Failed to serialize message data: {exc}") from exc


def create_message_envelope(data: Any, correlation_id: str = "") -> MessageEnvelope:
    """Build a ready-to-publish envelope.

    Args:
        data: bytes, str, pydantic model or any orjson-serializable value
        correlation_id: Reused when non-empty, otherwise a fresh id is generated

    Returns:
        Envelope tagged ``application/json`` regardless of the input kind
    """
    return MessageEnvelope(
        correlation_id=correlation_id or new_correlation_id(),
        payload=encode_payload(data),
        content_type=CONTENT_TYPE_JSON,
    )


__all__ = ["CORRELATION_ID_PREFIX", "create_message_envelope", "encode_payload", "new_correlation_id"]
