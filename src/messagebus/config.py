"""Configuration model for the message bus client.

Load from the environment with ``MessageBusConfig.from_env()`` or construct
directly::

    config = MessageBusConfig(host="localhost", port=1883, client_id="gateway-01", qos=1)
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ConnectionProtocol = Literal["tcp", "ssl", "ws", "wss"]


class MessageBusConfig(BaseModel):
    """Connection settings for an EdgeX-style message bus.

    Attributes:
        host: Broker hostname or IP address
        port: Broker port
        protocol: Connection protocol (tcp, ssl, ws, wss)
        type: Transport family (mqtt, nats)
        client_id: Unique client identifier for the broker connection
        username: Authentication username (optional)
        password: Authentication password (optional, redacted in logs)
        qos: Quality of service level forwarded to the transport when > 0
        keepalive: Protocol keepalive interval in seconds
        shutdown_timeout: Upper bound in seconds for joining dispatch tasks on
            disconnect (None waits until every task has exited)
    """

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=1883, ge=1, le=65535)
    protocol: ConnectionProtocol = "tcp"
    type: str = Field(default="mqtt", min_length=1)
    client_id: str = Field(..., min_length=1)
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = Field(default=0, ge=0, le=2)
    keepalive: int = Field(default=60, ge=1, le=3600)
    shutdown_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("protocol", "type", mode="before")
    @classmethod
    def _lowercase(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v

    def __repr__(self) -> str:
        """String representation with password redacted."""
        password_str = "***REDACTED***" if self.password else None
        return (
            f"MessageBusConfig(host={self.host!r}, port={self.port}, protocol={self.protocol!r}, "
            f"type={self.type!r}, client_id={self.client_id!r}, username={self.username!r}, "
            f"password={password_str!r}, qos={self.qos})"
        )

    def __str__(self) -> str:
        return self.__repr__()

    @property
    def broker_url(self) -> str:
        """Broker address without credentials, for diagnostics."""
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def uses_tls(self) -> bool:
        return self.protocol in ("ssl", "wss")

    @property
    def uses_websockets(self) -> bool:
        return self.protocol in ("ws", "wss")

    def provider_options(self) -> dict[str, str]:
        """Settings the transport provider is built from.

        Credentials are only included when set, and QoS only when it is
        greater than zero; a missing ``Qos`` means QoS 0.
        """
        options = {"ClientId": self.client_id}
        if self.username:
            options["Username"] = self.username
        if self.password:
            options["Password"] = self.password
        if self.qos > 0:
            options["Qos"] = str(self.qos)
        return options

    @classmethod
    def from_env(cls) -> MessageBusConfig:
        """Load configuration from environment variables.

        Required environment variables:
            MESSAGEBUS_CLIENT_ID: Unique client identifier

        Optional environment variables:
            MESSAGEBUS_HOST, MESSAGEBUS_PORT, MESSAGEBUS_PROTOCOL,
            MESSAGEBUS_TYPE, MESSAGEBUS_USERNAME, MESSAGEBUS_PASSWORD,
            MESSAGEBUS_QOS, MESSAGEBUS_KEEPALIVE, MESSAGEBUS_SHUTDOWN_TIMEOUT

        Raises:
            KeyError: If MESSAGEBUS_CLIENT_ID is missing
            ValueError: If validation fails
        """
        data: dict[str, str | None] = {
            "client_id": os.environ["MESSAGEBUS_CLIENT_ID"],
            "host": os.getenv("MESSAGEBUS_HOST"),
            "port": os.getenv("MESSAGEBUS_PORT"),
            "protocol": os.getenv("MESSAGEBUS_PROTOCOL"),
            "type": os.getenv("MESSAGEBUS_TYPE"),
            "username": os.getenv("MESSAGEBUS_USERNAME"),
            "password": os.getenv("MESSAGEBUS_PASSWORD"),
            "qos": os.getenv("MESSAGEBUS_QOS"),
            "keepalive": os.getenv("MESSAGEBUS_KEEPALIVE"),
            "shutdown_timeout": os.getenv("MESSAGEBUS_SHUTDOWN_TIMEOUT"),
        }
        filtered = {k: v for k, v in data.items() if v is not None}
        return cls.model_validate(filtered)


__all__ = ["MessageBusConfig", "ConnectionProtocol"]
