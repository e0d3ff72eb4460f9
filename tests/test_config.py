import socket

import pytest

from multicast_presence.errors import ConfigurationError
from multicast_presence.models.config import EngineSettings, SessionConfig, check_message
from multicast_presence.models.envelope import MAX_MESSAGE_SIZE


def test_defaults():
    cfg = SessionConfig()
    assert cfg.address == "239.255.255.250"
    assert cfg.port == 8888
    assert cfg.message == "Hello from client"
    assert cfg.interface is None
    assert cfg.family == socket.AF_INET
    assert not cfg.is_ipv6


def test_ipv6_family():
    cfg = SessionConfig.parse(address="ff08::1")
    assert cfg.is_ipv6
    assert cfg.family == socket.AF_INET6


@pytest.mark.parametrize("address", ["not-an-ip", "239.255.255", "ff08::zz", ""])
def test_bad_address(address):
    with pytest.raises(ConfigurationError) as exc:
        SessionConfig.parse(address=address)
    assert "address" in str(exc.value)


@pytest.mark.parametrize("port", [0, -1, 65536])
def test_bad_port(port):
    with pytest.raises(ConfigurationError):
        SessionConfig.parse(port=port)


def test_port_bounds_accepted():
    assert SessionConfig.parse(port=1).port == 1
    assert SessionConfig.parse(port=65535).port == 65535


def test_empty_interface_rejected():
    with pytest.raises(ConfigurationError):
        SessionConfig.parse(interface="  ")
    assert SessionConfig.parse(interface=" eth0 ").interface == "eth0"


def test_message_size_limit():
    SessionConfig.parse(message="x" * MAX_MESSAGE_SIZE)
    with pytest.raises(ConfigurationError):
        SessionConfig.parse(message="x" * (MAX_MESSAGE_SIZE + 1))
    # counted in encoded bytes, not characters
    with pytest.raises(ConfigurationError) as exc:
        check_message("é" * 300)
    assert exc.value.details == {"size": 600, "max": MAX_MESSAGE_SIZE}


def test_engine_settings():
    settings = EngineSettings()
    assert settings.broadcast_period == 3.0
    assert settings.receive_timeout == 1.0
    assert settings.ttl == 1
    assert settings.loopback
