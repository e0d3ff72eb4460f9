import asyncio
import json

import pytest

from fakes import FakeSocket
from multicast_presence.broadcaster import Broadcaster
from multicast_presence.models.events import EngineEvent


class Harness:
    def __init__(self, message: str = "hi"):
        self.message = message
        self.sent_count = 0
        self.events = []
        self.sock = FakeSocket()
        self.stop = asyncio.Event()
        self.broadcaster = Broadcaster(
            self.sock, "me", lambda: self.message, self.record_sent,
            lambda e, d: self.events.append((e, d)), self.stop, period=0.02,
        )

    def record_sent(self) -> int:
        self.sent_count += 1
        return self.sent_count

    def sent(self) -> list[dict]:
        return [json.loads(raw) for raw in self.sock.sent]

    def of(self, kind: str) -> list:
        return [d for e, d in self.events if e == kind]


@pytest.mark.asyncio
async def test_first_tick_connects_then_text(eventually):
    h = Harness()
    task = asyncio.create_task(h.broadcaster.run())
    await eventually(lambda: h.sent_count >= 3)
    h.stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    sent = h.sent()
    assert sent[0]["msg_type"] == "connect"
    assert all(s["msg_type"] == "text" for s in sent[1:-1])
    assert sent[-1]["msg_type"] == "disconnect"
    assert {s["sender_id"] for s in sent} == {"me"}
    assert [s["seq"] for s in sent[:-1]] == list(range(len(sent) - 1))


@pytest.mark.asyncio
async def test_sent_counter_emitted_each_tick(eventually):
    h = Harness()
    task = asyncio.create_task(h.broadcaster.run())
    await eventually(lambda: h.sent_count >= 3)
    h.stop.set()
    await task

    counts = h.of(EngineEvent.SENT)
    assert counts == list(range(1, len(counts) + 1))
    # the disconnect is not counted
    assert len(h.sock.sent) == h.sent_count + 1


@pytest.mark.asyncio
async def test_message_read_at_send_time(eventually):
    h = Harness("before")
    task = asyncio.create_task(h.broadcaster.run())
    await eventually(lambda: h.sent_count >= 1)
    h.message = "after"
    await eventually(lambda: h.sent()[-1]["text"] == "after")
    h.stop.set()
    await task
    assert h.sent()[0]["text"] == "before"


@pytest.mark.asyncio
async def test_send_failure_reported_and_not_counted(eventually):
    h = Harness()
    h.sock.send_error = "Failed to send: [Errno 101] Network is unreachable"
    task = asyncio.create_task(h.broadcaster.run())
    await eventually(lambda: len(h.of(EngineEvent.ERROR)) >= 2)
    h.stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert h.sent_count == 0
    assert h.of(EngineEvent.SENT) == []
    assert h.of(EngineEvent.ERROR)[0] == "Failed to send: [Errno 101] Network is unreachable"
    assert h.of(EngineEvent.STATUS)[-1] == "Broadcaster stopped"


@pytest.mark.asyncio
async def test_stop_before_first_tick_still_disconnects():
    h = Harness()
    h.stop.set()
    await asyncio.wait_for(h.broadcaster.run(), timeout=1.0)
    assert [s["msg_type"] for s in h.sent()] == ["disconnect"]
    assert h.sent_count == 0
