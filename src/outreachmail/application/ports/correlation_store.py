from __future__ import annotations
from datetime import datetime
from typing import Optional, Protocol

from outreachmail.domain.entities.contact import Contact
from outreachmail.domain.entities.inbound_reply import InboundReply
from outreachmail.domain.entities.outbound_message import OutboundMessage
from outreachmail.domain.models import Channel

class CorrelationStore(Protocol):
    def get_contact(self, contact_id: str) -> Optional[Contact]: ...
    def find_contact_by_email(self, email: str) -> Optional[Contact]: ...
    def upsert_contact(self, public_id: str, name: str, email: Optional[str]) -> Contact: ...

    def find_outbound_by_provider_id(self, provider_message_id: str) -> Optional[OutboundMessage]: ...
    def add_outbound_message(
        self,
        contact_id: str,
        provider_message_id: str,
        provider_thread_id: Optional[str],
        channel: Channel,
        sent_at: datetime,
        sent_by: Optional[str],
        subject: str = "",
        rfc_message_id: Optional[str] = None,
    ) -> OutboundMessage: ...

    def insert_inbound_reply(self, reply: InboundReply) -> bool: ...
    def get_inbound_reply(self, provider_message_id: str) -> Optional[InboundReply]: ...
    def list_inbound_replies(
        self, contact_id: Optional[str] = None, unattributed_only: bool = False, limit: int = 100
    ) -> list[InboundReply]: ...
