"""
Receiver loop: reads datagrams from the group, drops noise and self-echo,
and feeds the presence table.
"""

import asyncio
import logging
from typing import Any, Callable

from multicast_presence.errors import SocketError
from multicast_presence.models.envelope import MessageEnvelope, MsgType
from multicast_presence.models.events import EngineEvent, InboundMessage
from multicast_presence.presence import PresenceTable
from multicast_presence.transport.envelope import parse_envelope
from multicast_presence.transport.multicast import MulticastSocket

logger = logging.getLogger("multicast_presence.receiver")


class Receiver:
    def __init__(
        self,
        sock: MulticastSocket,
        instance_id: str,
        table: PresenceTable,
        emit: Callable[[str, Any], None],
        stop_event: asyncio.Event,
        timeout: float = 1.0,
    ):
        self._sock = sock
        self._instance_id = instance_id
        self._table = table
        self._emit = emit
        self._stop = stop_event
        self._timeout = timeout
        self.received_count = 0
        self.dropped_count = 0

    async def run(self) -> None:
        self._emit(EngineEvent.STATUS, "Receiver started")
        while not self._stop.is_set():
            try:
                packet = await self._sock.receive(self._timeout)
            except SocketError as e:
                # Fatal for this loop only; the broadcaster keeps going.
                logger.error("Receiver stopped: %s", e)
                self._emit(EngineEvent.ERROR, f"Receiver stopped: {e}")
                return
            if packet is None:
                continue
            data, source = packet
            self.handle_datagram(data, source)
        self._emit(EngineEvent.STATUS, "Receiver stopped")

    def handle_datagram(self, data: bytes, source: Any = None) -> None:
        envelope = parse_envelope(data)
        if envelope is None:
            self.dropped_count += 1
            logger.debug("Dropped %d-byte malformed datagram from %s", len(data), source)
            return
        if envelope.sender_id == self._instance_id:
            return
        self.received_count += 1
        self._accept(envelope, source)

    def _accept(self, envelope: MessageEnvelope, source: Any) -> None:
        # Disconnect counts as a sighting but keeps the last real message.
        text = None if envelope.msg_type == MsgType.DISCONNECT else envelope.text
        self._table.upsert(envelope.sender_id, text)
        logger.debug("%s from %s via %s: %s", envelope.msg_type.value, envelope.sender_id, source, envelope.text)
        self._emit(EngineEvent.MESSAGE, InboundMessage(
            msg_type=envelope.msg_type.value,
            sender_id=envelope.sender_id,
            text=envelope.text,
            timestamp=envelope.timestamp,
        ))
