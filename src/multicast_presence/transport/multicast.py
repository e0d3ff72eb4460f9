"""
Multicast socket. One UDP socket per session, joined to the group and
used for both sending and receiving.

Setup order: resolve interface, create, reuse-address, bind to the group,
join group, egress interface, TTL/hops, loopback, multicast-all off,
non-blocking.
"""

import asyncio
import logging
import socket
import struct
import sys
from typing import Optional

from multicast_presence.errors import SocketError
from multicast_presence.models.config import EngineSettings, SessionConfig
from multicast_presence.transport.interfaces import ResolvedInterface, resolve_interface

logger = logging.getLogger("multicast_presence.transport.multicast")

RECV_BUFFER_SIZE = 65535

# Linux socket options, not exported by every Python build.
IP_MULTICAST_ALL = getattr(socket, "IP_MULTICAST_ALL", 49)
IPV6_MULTICAST_ALL = getattr(socket, "IPV6_MULTICAST_ALL", 29)


def family_for(address: str) -> int:
    """A literal containing ':' is IPv6, anything else IPv4."""
    return socket.AF_INET6 if ":" in address else socket.AF_INET


def _membership_request(family: int, group: str, iface: Optional[ResolvedInterface]) -> bytes:
    if family == socket.AF_INET6:
        return struct.pack("16sI", socket.inet_pton(socket.AF_INET6, group), iface.index if iface else 0)
    local = iface.address if iface else "0.0.0.0"
    return struct.pack("4s4s", socket.inet_aton(group), socket.inet_aton(local))


def _bind_address(family: int, group: str, port: int, iface: Optional[ResolvedInterface]) -> tuple:
    """Bind to the group itself so datagrams for other groups on the same
    port are not delivered. Windows only accepts the wildcard address, and
    interface- or link-local IPv6 groups need a scope id to bind.
    """
    if sys.platform == "win32":
        return ("::", port) if family == socket.AF_INET6 else ("", port)
    if family == socket.AF_INET:
        return (group, port)
    scope = socket.inet_pton(socket.AF_INET6, group)[1] & 0x0F
    if scope in (1, 2):
        if iface is None:
            return ("::", port)
        return (group, port, 0, iface.index)
    return (group, port, 0, 0)


def _disable_multicast_all(sock: socket.socket, family: int) -> None:
    if not sys.platform.startswith("linux"):
        return
    if family == socket.AF_INET6:
        level, option = socket.IPPROTO_IPV6, IPV6_MULTICAST_ALL
    else:
        level, option = socket.IPPROTO_IP, IP_MULTICAST_ALL
    try:
        sock.setsockopt(level, option, 0)
    except OSError as e:
        logger.debug("Could not disable multicast-all: %s", e)


def _configure(
    sock: socket.socket,
    family: int,
    group: str,
    port: int,
    iface: Optional[ResolvedInterface],
    settings: EngineSettings,
) -> None:
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    if hasattr(socket, "SO_REUSEPORT"):
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except OSError:
            logger.debug("SO_REUSEPORT not supported, continuing without it")

    bind_to = _bind_address(family, group, port, iface)
    if family == socket.AF_INET6:
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
        sock.bind(bind_to)
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, _membership_request(family, group, iface))
        if iface:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_IF, iface.index)
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, settings.ttl)
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_LOOP, int(settings.loopback))
    else:
        sock.bind(bind_to)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, _membership_request(family, group, iface))
        if iface:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(iface.address))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, settings.ttl)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, int(settings.loopback))

    _disable_multicast_all(sock, family)
    sock.setblocking(False)


class MulticastSocket:
    def __init__(self, sock: socket.socket, group: str, port: int, interface: Optional[ResolvedInterface] = None):
        self._sock = sock
        self._group = group
        self._port = port
        self._interface = interface
        self._closed = False

    @classmethod
    def open(cls, config: SessionConfig, settings: Optional[EngineSettings] = None) -> "MulticastSocket":
        """Create the socket, bind and join the group.

        Raises ConfigurationError for an unknown interface and SocketError for
        any bind/join failure. Nothing is retried.
        """
        settings = settings or EngineSettings()
        family = family_for(config.address)
        iface = resolve_interface(config.interface, family) if config.interface else None

        try:
            sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        except OSError as e:
            raise SocketError(f"Failed to create socket: {e}")

        try:
            _configure(sock, family, config.address, config.port, iface, settings)
        except OSError as e:
            sock.close()
            raise SocketError(
                f"Failed to join {config.address}:{config.port}: {e}",
                details={"address": config.address, "port": config.port},
            )

        logger.info(
            "Joined multicast group %s:%d (%s, interface=%s)",
            config.address, config.port,
            "IPv6" if family == socket.AF_INET6 else "IPv4",
            iface.name if iface else "auto",
        )
        return cls(sock, config.address, config.port, iface)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def group(self) -> tuple[str, int]:
        return (self._group, self._port)

    @property
    def interface(self) -> Optional[ResolvedInterface]:
        return self._interface

    async def send(self, data: bytes) -> None:
        """Fire one datagram at the group. Failure leaves the socket open."""
        if self._closed:
            raise SocketError("Socket is closed")
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendto(self._sock, data, self.group)
        except OSError as e:
            raise SocketError(f"Failed to send: {e}")

    async def receive(self, timeout: float) -> Optional[tuple[bytes, tuple]]:
        """Wait up to `timeout` seconds for a datagram. None on timeout."""
        if self._closed:
            raise SocketError("Socket is closed")
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.sock_recvfrom(self._sock, RECV_BUFFER_SIZE), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        except OSError as e:
            raise SocketError(f"Error receiving: {e}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        logger.info("Closed multicast socket for %s:%d", self._group, self._port)
