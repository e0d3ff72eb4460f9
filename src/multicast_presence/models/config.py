"""
Session configuration and engine tuning.
"""

import ipaddress
import socket
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from multicast_presence.errors import ConfigurationError
from multicast_presence.models.envelope import MAX_MESSAGE_SIZE

DEFAULT_ADDRESS = "239.255.255.250"
DEFAULT_PORT = 8888
DEFAULT_MESSAGE = "Hello from client"


def check_message(message: str) -> str:
    """Raise ConfigurationError if message does not fit in one envelope."""
    size = len(message.encode("utf-8"))
    if size > MAX_MESSAGE_SIZE:
        raise ConfigurationError(
            f"Message too long: {size} bytes (max {MAX_MESSAGE_SIZE})",
            details={"size": size, "max": MAX_MESSAGE_SIZE},
        )
    return message


class SessionConfig(BaseModel):
    address: str = DEFAULT_ADDRESS
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    message: str = DEFAULT_MESSAGE
    interface: Optional[str] = None  # None selects the platform default

    @field_validator("address")
    @classmethod
    def _parse_address(cls, value: str) -> str:
        value = value.strip()
        try:
            ipaddress.ip_address(value)
        except ValueError:
            raise ValueError(f"Invalid multicast address: {value!r}")
        return value

    @field_validator("message")
    @classmethod
    def _message_size(cls, value: str) -> str:
        size = len(value.encode("utf-8"))
        if size > MAX_MESSAGE_SIZE:
            raise ValueError(f"Message too long: {size} bytes (max {MAX_MESSAGE_SIZE})")
        return value

    @field_validator("interface")
    @classmethod
    def _interface_name(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Interface name must not be empty")
        return value.strip() if value is not None else None

    @property
    def is_ipv6(self) -> bool:
        return ":" in self.address

    @property
    def family(self) -> int:
        return socket.AF_INET6 if self.is_ipv6 else socket.AF_INET

    @classmethod
    def parse(cls, **kwargs: Any) -> "SessionConfig":
        """Build a config, turning validation failures into ConfigurationError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "config"
            raise ConfigurationError(
                f"Invalid {field}: {first.get('msg', 'invalid value')}",
                details={"errors": e.errors(include_url=False)},
            )


class EngineSettings(BaseModel):
    broadcast_period: float = Field(default=3.0, gt=0)
    receive_timeout: float = Field(default=1.0, gt=0)
    ttl: int = Field(default=1, ge=0, le=255)
    loopback: bool = True
