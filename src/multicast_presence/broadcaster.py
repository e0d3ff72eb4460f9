"""
Broadcaster loop: announces this instance to the group on a fixed period.

Tick 0 sends a connect envelope, later ticks send text. The message is read
at send time so update_message() takes effect on the next tick. On stop a
final disconnect is sent, best effort.
"""

import asyncio
import logging
from typing import Any, Callable

from multicast_presence.errors import SocketError
from multicast_presence.models.envelope import MsgType
from multicast_presence.models.events import EngineEvent
from multicast_presence.transport.envelope import build_envelope, encode_envelope
from multicast_presence.transport.multicast import MulticastSocket

logger = logging.getLogger("multicast_presence.broadcaster")


class Broadcaster:
    def __init__(
        self,
        sock: MulticastSocket,
        sender_id: str,
        get_message: Callable[[], str],
        record_sent: Callable[[], int],
        emit: Callable[[str, Any], None],
        stop_event: asyncio.Event,
        period: float = 3.0,
    ):
        self._sock = sock
        self._sender_id = sender_id
        self._get_message = get_message
        self._record_sent = record_sent
        self._emit = emit
        self._stop = stop_event
        self._period = period
        self.ticks = 0

    async def run(self) -> None:
        self._emit(EngineEvent.STATUS, "Broadcaster started")
        logger.info("Sending to %s:%d every %.1fs", *self._sock.group, self._period)
        try:
            while not self._stop.is_set():
                await self._tick()
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self._period)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self._send_disconnect()
            self._emit(EngineEvent.STATUS, "Broadcaster stopped")

    async def _tick(self) -> None:
        msg_type = MsgType.CONNECT if self.ticks == 0 else MsgType.TEXT
        envelope = build_envelope(msg_type, self._sender_id, self._get_message(), seq=self.ticks)
        self.ticks += 1
        try:
            await self._sock.send(encode_envelope(envelope))
        except SocketError as e:
            logger.warning("Send failed: %s", e)
            self._emit(EngineEvent.ERROR, str(e))
            return
        count = self._record_sent()
        logger.debug("Sent %s #%d: %s", msg_type.value, envelope.seq, envelope.text)
        self._emit(EngineEvent.SENT, count)

    async def _send_disconnect(self) -> None:
        envelope = build_envelope(MsgType.DISCONNECT, self._sender_id, self._get_message(), seq=self.ticks)
        try:
            await self._sock.send(encode_envelope(envelope))
        except SocketError as e:
            logger.debug("Disconnect not sent: %s", e)
            return
        logger.info("Sent disconnect for %s", self._sender_id)
