from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from outreachmail.domain.models import ChangeType

@dataclass(frozen=True)
class ChangeFeedItem:
    change_type: ChangeType
    message_id: str
    labels: frozenset[str] = field(default_factory=frozenset)
    thread_id: Optional[str] = None

    def has_label(self, label: str) -> bool:
        return label in self.labels


@dataclass(frozen=True)
class DecodedMessage:
    plain_text: str
    sender: str
    sender_address: Optional[str]
    in_reply_to_id: Optional[str]
    subject: str
    received_at: datetime
