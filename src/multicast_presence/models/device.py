"""
Active device rows returned by get_active_devices().
"""

from enum import Enum

from pydantic import BaseModel

FRESH_SECONDS = 2.0
ACTIVE_SECONDS = 5.0
WARNING_SECONDS = 10.0


class Staleness(str, Enum):
    FRESH = "fresh"
    ACTIVE = "active"
    WARNING = "warning"
    STALE = "stale"

    @classmethod
    def classify(cls, seconds_since_seen: float) -> "Staleness":
        if seconds_since_seen < FRESH_SECONDS:
            return cls.FRESH
        if seconds_since_seen < ACTIVE_SECONDS:
            return cls.ACTIVE
        if seconds_since_seen < WARNING_SECONDS:
            return cls.WARNING
        return cls.STALE


class DeviceInfo(BaseModel):
    peer_id: str
    last_message: str = ""
    message_count: int = 0
    seconds_since_seen: float = 0.0

    @property
    def staleness(self) -> Staleness:
        return Staleness.classify(self.seconds_since_seen)
