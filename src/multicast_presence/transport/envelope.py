"""
Envelope construction and parsing.
"""

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import ValidationError

from multicast_presence.models.envelope import MessageEnvelope, MsgType


def build_envelope(
    msg_type: MsgType,
    sender_id: str,
    text: str = "",
    seq: int = 0,
) -> MessageEnvelope:
    """Build an outbound envelope stamped with the current UTC time."""
    return MessageEnvelope(
        msg_type=msg_type,
        sender_id=sender_id,
        text=text,
        timestamp=datetime.now(timezone.utc).isoformat(),
        seq=seq,
    )


def encode_envelope(envelope: MessageEnvelope) -> bytes:
    return envelope.model_dump_json().encode("utf-8")


def parse_envelope(raw: Union[bytes, str]) -> Optional[MessageEnvelope]:
    """Parse an inbound datagram. Returns None if invalid."""
    try:
        return MessageEnvelope.model_validate_json(raw)
    except (ValidationError, ValueError):
        return None
