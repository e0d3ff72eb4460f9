"""
Multicast presence error types.
"""

from typing import Any, Optional


class MulticastError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ConfigurationError(MulticastError):
    """Bad address, port, message or interface selector."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("configuration_error", message, details)


class AlreadyRunningError(MulticastError):
    def __init__(self, message: str = "Multicast already running"):
        super().__init__("already_running", message)


class NotRunningError(MulticastError):
    def __init__(self, message: str = "Multicast not running"):
        super().__init__("not_running", message)


class SocketError(MulticastError):
    """Bind, join, send or receive failure."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("socket_error", message, details)


class ParseError(MulticastError):
    """Malformed inbound datagram. Never leaves the receiver."""

    def __init__(self, message: str):
        super().__init__("parse_error", message)
