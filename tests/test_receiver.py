import asyncio

import pytest

from fakes import FakeSocket, datagram
from multicast_presence.models.envelope import MsgType
from multicast_presence.models.events import EngineEvent, InboundMessage
from multicast_presence.presence import PresenceTable
from multicast_presence.receiver import Receiver

SELF_ID = "self-0000"


def make_receiver(clock):
    events = []
    sock = FakeSocket()
    table = PresenceTable(clock)
    stop = asyncio.Event()
    receiver = Receiver(sock, SELF_ID, table, lambda e, d: events.append((e, d)), stop, timeout=0.02)
    return receiver, sock, table, stop, events


def messages(events):
    return [d for e, d in events if e == EngineEvent.MESSAGE]


@pytest.mark.asyncio
async def test_peer_datagram_updates_table_and_emits(clock):
    receiver, _, table, _, events = make_receiver(clock)
    receiver.handle_datagram(datagram("peer-1", "hi"))

    [dev] = table.snapshot()
    assert dev.peer_id == "peer-1"
    assert dev.last_message == "hi"
    [msg] = messages(events)
    assert isinstance(msg, InboundMessage)
    assert msg.msg_type == "text"
    assert msg.sender_id == "peer-1"
    assert msg.text == "hi"
    assert msg.timestamp
    assert receiver.received_count == 1


@pytest.mark.asyncio
async def test_self_datagram_is_ignored(clock):
    receiver, _, table, _, events = make_receiver(clock)
    for msg_type in MsgType:
        receiver.handle_datagram(datagram(SELF_ID, "echo", msg_type))
    assert table.snapshot() == []
    assert messages(events) == []
    assert receiver.received_count == 0


@pytest.mark.asyncio
async def test_malformed_datagram_is_counted_not_surfaced(clock):
    receiver, _, table, _, events = make_receiver(clock)
    receiver.handle_datagram(b"\x00\x00\x05garbage")
    receiver.handle_datagram(b"{}")
    assert receiver.dropped_count == 2
    assert table.snapshot() == []
    assert events == []


@pytest.mark.asyncio
async def test_disconnect_refreshes_without_evicting(clock):
    receiver, _, table, _, events = make_receiver(clock)
    receiver.handle_datagram(datagram("peer-1", "hello", MsgType.CONNECT, seq=0))
    clock.advance(4)
    receiver.handle_datagram(datagram("peer-1", "bye", MsgType.DISCONNECT, seq=5))

    [dev] = table.snapshot()
    assert dev.message_count == 2
    assert dev.seconds_since_seen == 0.0
    assert dev.last_message == "hello"
    assert [m.msg_type for m in messages(events)] == ["connect", "disconnect"]


@pytest.mark.asyncio
async def test_run_reads_until_stopped(clock, eventually):
    receiver, sock, table, stop, events = make_receiver(clock)
    task = asyncio.create_task(receiver.run())
    sock.feed(datagram("peer-1", "a"))
    sock.feed(datagram("peer-2", "b"))
    await eventually(lambda: len(table) == 2)

    stop.set()
    await asyncio.wait_for(task, timeout=1.0)
    statuses = [d for e, d in events if e == EngineEvent.STATUS]
    assert statuses == ["Receiver started", "Receiver stopped"]


@pytest.mark.asyncio
async def test_run_ends_once_on_socket_error(clock):
    receiver, sock, _, _, events = make_receiver(clock)
    sock.receive_error = "Error receiving: [Errno 9] Bad file descriptor"
    await asyncio.wait_for(receiver.run(), timeout=1.0)

    errors = [d for e, d in events if e == EngineEvent.ERROR]
    assert errors == ["Receiver stopped: Error receiving: [Errno 9] Bad file descriptor"]
