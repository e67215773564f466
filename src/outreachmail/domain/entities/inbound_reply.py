from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from outreachmail.domain.models import Channel

@dataclass(frozen=True)
class InboundReply:
    id: str
    provider_message_id: str
    content: str
    channel: Channel
    received_at: datetime
    sender: str
    contact_id: Optional[str]
    outbound_message_id: Optional[str]
    provider_thread_id: Optional[str] = None
    subject: str = ""
