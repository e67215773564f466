"""Attribute an inbound message to a known contact and outbound thread."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from outreachmail.application.ports.correlation_store import CorrelationStore
from outreachmail.domain.entities.change_feed import DecodedMessage
from outreachmail.domain.entities.contact import Contact
from outreachmail.domain.entities.outbound_message import OutboundMessage


@dataclass(frozen=True)
class Correlation:
    contact: Optional[Contact]
    outbound: Optional[OutboundMessage]
    matched_by: Optional[str] = None

    @property
    def attributed(self) -> bool:
        return self.contact is not None


UNATTRIBUTED = Correlation(contact=None, outbound=None)


def strip_message_id(value: str) -> str:
    """Normalize a Message-ID style header value: ``<abc@x>`` -> ``abc@x``."""
    token = value.strip().split()[0] if value.strip() else ""
    return token.replace("<", "").replace(">", "")


class CorrelationResolver:
    """Resolve an inbound message to ``(contact, outbound message)``.

    Order matters, first match wins:

    1. In-Reply-To header equal to the provider id of a message we sent.
       The contact of that outbound message is authoritative.
    2. Exact (case-sensitive) match of the sender address against a
       contact's stored email.
    3. Nothing matched: both references are None. The reply is still
       stored so a human can triage it.
    """

    def __init__(self, store: CorrelationStore) -> None:
        self.store = store

    def resolve(self, message: DecodedMessage) -> Correlation:
        if message.in_reply_to_id:
            anchor_id = strip_message_id(message.in_reply_to_id)
            outbound = self.store.find_outbound_by_provider_id(anchor_id) if anchor_id else None
            if outbound is not None:
                contact = self.store.get_contact(outbound.contact_id)
                logger.debug(f"Reply anchored to outbound {outbound.id} via In-Reply-To {anchor_id}")
                return Correlation(contact=contact, outbound=outbound, matched_by="in_reply_to")

        if message.sender_address:
            contact = self.store.find_contact_by_email(message.sender_address)
            if contact is not None:
                logger.debug(f"Reply attributed to contact {contact.id} by sender address")
                return Correlation(contact=contact, outbound=None, matched_by="sender_address")

        logger.info(f"Could not attribute message from {message.sender!r}: {message.subject[:50]}")
        return UNATTRIBUTED
