from __future__ import annotations

import base64
import binascii
from typing import Any

import orjson
from pydantic import BaseModel, Field, ValidationError

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_BINARY = "application/octet-stream"
API_VERSION = "v3"

# Envelope field name -> key used on the wire (EdgeX JSON form).
_WIRE_KEYS = {
    "correlation_id": "correlationID",
    "request_id": "requestID",
    "api_version": "apiVersion",
    "error_code": "errorCode",
    "payload": "payload",
    "content_type": "contentType",
    "query_params": "queryParams",
}


class MessageEnvelope(BaseModel):
    """Unit of exchange on the message bus.

    ``received_topic`` is filled in by the transport on delivery and carries the
    concrete topic a wildcard subscription matched. It is never sent on the wire.
    """

    correlation_id: str
    request_id: str = ""
    api_version: str = API_VERSION
    error_code: int = 0
    payload: bytes = b""
    content_type: str = CONTENT_TYPE_JSON
    received_topic: str = ""
    query_params: dict[str, str] = Field(default_factory=dict)

    model_config = {"extra": "forbid", "frozen": True}

    def with_received_topic(self, topic: str) -> "MessageEnvelope":
        return self.model_copy(update={"received_topic": topic})

    def to_wire(self) -> bytes:
        body: dict[str, Any] = {
            wire: getattr(self, field) for field, wire in _WIRE_KEYS.items()
        }
        body["payload"] = base64.b64encode(self.payload).decode("ascii")
        return orjson.dumps(body)

    @classmethod
    def from_wire(cls, raw: bytes | bytearray | str) -> "MessageEnvelope":
        """Decode the JSON wire form.

        Raises:
            ValueError: If ``raw`` is not a wire envelope
        """
        try:
            body = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise ValueError(f"not JSON: {exc}") from exc
        if not isinstance(body, dict) or "correlationID" not in body:
            raise ValueError("missing correlationID")

        data: dict[str, Any] = {}
        for field, wire in _WIRE_KEYS.items():
            if wire in body and body[wire] is not None:
                data[field] = body[wire]
        try:
            data["payload"] = base64.b64decode(data.get("payload", ""), validate=True)
        except (binascii.Error, TypeError) as exc:
            raise ValueError(f"payload is not base64: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc


__all__ = [
    "API_VERSION",
    "CONTENT_TYPE_BINARY",
    "CONTENT_TYPE_JSON",
    "MessageEnvelope",
]
