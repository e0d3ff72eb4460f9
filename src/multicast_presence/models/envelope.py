"""
Wire envelope exchanged between peers on the multicast group.
"""

from enum import Enum

from pydantic import BaseModel

MAX_MESSAGE_SIZE = 500  # bytes of UTF-8 text per envelope


class MsgType(str, Enum):
    CONNECT = "connect"
    TEXT = "text"
    DISCONNECT = "disconnect"


class MessageEnvelope(BaseModel):
    msg_type: MsgType
    sender_id: str
    text: str = ""
    timestamp: str
    seq: int = 0  # sender's tick number, 0 on the connect tick
