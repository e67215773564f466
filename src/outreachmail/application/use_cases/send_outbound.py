"""Compose and send outbound messages, recording ids for later correlation."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from email.header import Header
from typing import Optional

from loguru import logger

from outreachmail.application.connection import MailboxConnection
from outreachmail.application.ports.correlation_store import CorrelationStore
from outreachmail.application.ports.mailbox_client import MailboxClient
from outreachmail.application.sessions import SessionProvider
from outreachmail.domain.entities.contact import Contact
from outreachmail.domain.entities.outbound_message import OutboundMessage
from outreachmail.domain.errors import AuthExpired, SendError
from outreachmail.domain.models import Channel


def compose_message(
    to: str,
    subject: str,
    body: str,
    in_reply_to: Optional[str] = None,
) -> str:
    """Build a minimal HTML message: headers, blank line, body."""
    lines = [
        f"To: {to}",
        f"Subject: {Header(subject, 'utf-8').encode()}",
        "Content-Type: text/html; charset=utf-8",
        "MIME-Version: 1.0",
    ]
    if in_reply_to:
        ref = in_reply_to if in_reply_to.startswith("<") else f"<{in_reply_to}>"
        lines += [f"In-Reply-To: {ref}", f"References: {ref}"]
    lines += ["", body.replace("\n", "<br>")]
    return "\r\n".join(lines)


def encode_raw(message: str) -> str:
    return base64.urlsafe_b64encode(message.encode("utf-8")).decode("ascii")


class OutboundDispatcher:
    """Send a new message or a threaded reply to a contact.

    Exactly one ``OutboundMessage`` row is written per successful send. When
    ``thread_id`` is given the provider threads the message with the earlier
    ones, which is what lets the recipient's reply carry our id back in
    In-Reply-To.
    """

    def __init__(
        self,
        sessions: SessionProvider,
        client: MailboxClient,
        store: CorrelationStore,
        connection: MailboxConnection,
        scope: str,
    ) -> None:
        self.sessions = sessions
        self.client = client
        self.store = store
        self.connection = connection
        self.scope = scope

    async def send(
        self,
        contact: Contact,
        subject: str,
        body: str,
        thread_id: Optional[str] = None,
        sent_by: Optional[str] = None,
        in_reply_to: Optional[str] = None,
    ) -> OutboundMessage:
        if not contact.email:
            raise SendError(f"Contact {contact.public_id} has no email address")

        raw = encode_raw(compose_message(contact.email, subject, body, in_reply_to=in_reply_to))

        try:
            session = await self.sessions.get(self.scope)
            sent = await self.client.send(session, raw, thread_id=thread_id)
        except AuthExpired:
            self.sessions.invalidate(self.scope)
            self.connection.mark_disconnected(self.scope)
            raise

        outbound = self.store.add_outbound_message(
            contact_id=contact.id,
            provider_message_id=sent.provider_message_id,
            provider_thread_id=sent.provider_thread_id,
            channel=Channel.EMAIL,
            sent_at=datetime.now(timezone.utc),
            sent_by=sent_by,
            subject=subject,
            rfc_message_id=sent.rfc_message_id,
        )
        logger.info(
            f"Sent message {sent.provider_message_id} to {contact.email} "
            f"(thread {sent.provider_thread_id}, sent_by={sent_by})"
        )
        return outbound
