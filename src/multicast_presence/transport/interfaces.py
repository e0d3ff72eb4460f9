"""
Local network interface discovery and selection.
"""

import socket
from typing import Any, NamedTuple, Optional

import psutil

from multicast_presence.errors import ConfigurationError


class ResolvedInterface(NamedTuple):
    name: str
    index: int
    address: Optional[str]  # IPv4 address, used for IPv4 membership and egress


def _family_addresses(addrs: list[Any], family: int) -> list[str]:
    # psutil reports scoped IPv6 addresses as "fe80::1%eth0"
    return [a.address.split("%", 1)[0] for a in addrs if a.family == family and a.address]


def list_interfaces() -> list[dict[str, Any]]:
    """Every local interface with its index, state and addresses."""
    out = []
    addrs = psutil.net_if_addrs()
    stats = psutil.net_if_stats()
    for name, lst in addrs.items():
        st = stats.get(name)
        try:
            index = socket.if_nametoindex(name)
        except OSError:
            index = 0
        out.append({
            "name": name,
            "index": index,
            "is_up": bool(st and st.isup),
            "ipv4": _family_addresses(lst, socket.AF_INET),
            "ipv6": _family_addresses(lst, socket.AF_INET6),
        })
    return out


def resolve_interface(name: str, family: int) -> ResolvedInterface:
    """Resolve an interface name for the given address family.

    IPv4 membership and egress selection are keyed by the interface's IPv4
    address; IPv6 uses the interface index.
    """
    addrs = psutil.net_if_addrs()
    if name not in addrs:
        raise ConfigurationError(f"Interface not found: {name}", details={"interface": name})

    try:
        index = socket.if_nametoindex(name)
    except OSError:
        index = 0

    if family == socket.AF_INET6:
        if not index:
            raise ConfigurationError(f"Interface {name} has no index", details={"interface": name})
        return ResolvedInterface(name, index, None)

    ipv4 = _family_addresses(addrs[name], socket.AF_INET)
    if not ipv4:
        raise ConfigurationError(f"Interface {name} has no IPv4 address", details={"interface": name})
    return ResolvedInterface(name, index, ipv4[0])
