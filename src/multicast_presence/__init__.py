"""
multicast-presence — LAN presence and messaging over IP multicast.

Periodically broadcasts a text message to an IPv4 or IPv6 multicast group,
listens for other participants and keeps a live table of peers.
"""

from multicast_presence.session import AsyncMulticastSession, MulticastSession, SessionState
from multicast_presence.models.config import EngineSettings, SessionConfig
from multicast_presence.models.device import DeviceInfo, Staleness
from multicast_presence.models.envelope import MessageEnvelope, MsgType
from multicast_presence.models.events import EngineEvent, InboundMessage
from multicast_presence.errors import (
    MulticastError,
    ConfigurationError,
    AlreadyRunningError,
    NotRunningError,
    SocketError,
    ParseError,
)

__version__ = "0.1.0"
__all__ = [
    "AsyncMulticastSession",
    "MulticastSession",
    "SessionState",
    "SessionConfig",
    "EngineSettings",
    "DeviceInfo",
    "Staleness",
    "MessageEnvelope",
    "MsgType",
    "EngineEvent",
    "InboundMessage",
    "MulticastError",
    "ConfigurationError",
    "AlreadyRunningError",
    "NotRunningError",
    "SocketError",
    "ParseError",
]
