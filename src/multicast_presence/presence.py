"""
Peer presence table. One liveness record per peer identifier.

Records are created on first receipt, refreshed on every later receipt and
only removed by clear(). Age is derived at snapshot time, never stored.
"""

import threading
import time
from typing import Callable, Optional

from multicast_presence.models.device import DeviceInfo


class PeerRecord:
    __slots__ = ("peer_id", "last_message", "message_count", "last_seen_at")

    def __init__(self, peer_id: str, last_message: str, last_seen_at: float):
        self.peer_id = peer_id
        self.last_message = last_message
        self.message_count = 1
        self.last_seen_at = last_seen_at

    def __repr__(self) -> str:
        return f"PeerRecord(peer_id={self.peer_id!r}, message_count={self.message_count})"


class PresenceTable:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._peers: dict[str, PeerRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def __contains__(self, peer_id: object) -> bool:
        with self._lock:
            return peer_id in self._peers

    def upsert(self, peer_id: str, text: Optional[str], now: Optional[float] = None) -> PeerRecord:
        """Record one receipt from peer_id.

        text=None counts the receipt and refreshes last_seen_at but keeps the
        previous last_message (used for disconnect envelopes).
        """
        now = self._clock() if now is None else now
        with self._lock:
            record = self._peers.get(peer_id)
            if record is None:
                record = PeerRecord(peer_id, text or "", now)
                self._peers[peer_id] = record
                return record
            if text is not None:
                record.last_message = text
            record.message_count += 1
            record.last_seen_at = now
            return record

    def snapshot(self, now: Optional[float] = None) -> list[DeviceInfo]:
        """Active devices in first-seen order."""
        now = self._clock() if now is None else now
        with self._lock:
            rows = [
                (r.peer_id, r.last_message, r.message_count, r.last_seen_at)
                for r in self._peers.values()
            ]
        return [
            DeviceInfo(
                peer_id=peer_id,
                last_message=last_message,
                message_count=count,
                seconds_since_seen=max(0.0, now - seen),
            )
            for peer_id, last_message, count, seen in rows
        ]

    def clear(self) -> None:
        with self._lock:
            self._peers.clear()
