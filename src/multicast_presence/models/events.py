"""
Event names emitted by a session, and the inbound message payload.
"""

from pydantic import BaseModel


class EngineEvent:
    MESSAGE = "multicast-message"   # InboundMessage
    STATUS = "multicast-status"     # str
    ERROR = "multicast-error"       # str
    SENT = "multicast-sent"         # int


class InboundMessage(BaseModel):
    msg_type: str
    sender_id: str
    text: str
    timestamp: str
