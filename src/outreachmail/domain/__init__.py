"""Domain models and entities."""

from outreachmail.domain.entities.change_feed import ChangeFeedItem, DecodedMessage
from outreachmail.domain.entities.contact import Contact
from outreachmail.domain.entities.inbound_reply import InboundReply
from outreachmail.domain.entities.outbound_message import OutboundMessage
from outreachmail.domain.models import Channel, ChangeType, SyncState

__all__ = [
    "Channel",
    "ChangeType",
    "SyncState",
    "Contact",
    "OutboundMessage",
    "InboundReply",
    "ChangeFeedItem",
    "DecodedMessage",
]
