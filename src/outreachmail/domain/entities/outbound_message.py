from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from outreachmail.domain.models import Channel

@dataclass(frozen=True)
class OutboundMessage:
    id: str
    contact_id: str
    provider_message_id: str
    provider_thread_id: Optional[str]
    channel: Channel
    sent_at: datetime
    sent_by: Optional[str]
    subject: str = ""
    # RFC 5322 Message-ID as seen by recipients, used by In-Reply-To matching
    rfc_message_id: Optional[str] = None
