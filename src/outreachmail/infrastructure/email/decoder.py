from __future__ import annotations
import re
from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parseaddr
from typing import Optional

from outreachmail.application.ports.mailbox_client import RawMessage
from outreachmail.application.use_cases.resolve_correlation import strip_message_id
from outreachmail.domain.entities.change_feed import DecodedMessage
from outreachmail.domain.errors import DecodeFailure

_WROTE_RE = re.compile(r"wrote:\s*$")


def _leaf_text(em: EmailMessage, ctype: str) -> Optional[str]:
    # walk() is a depth-first, pre-order traversal of the part tree
    for part in em.walk():
        if part.is_multipart() or part.get_content_type() != ctype:
            continue
        if part.get_content_disposition() == "attachment":
            continue
        return part.get_content()
    return None


def _as_text(em: EmailMessage) -> str:
    # Prefer text/plain; fall back to the HTML body verbatim
    text = _leaf_text(em, "text/plain")
    if text is None:
        text = _leaf_text(em, "text/html")
    return text or ""


def strip_quoted_reply(text: str) -> str:
    """Cut ``text`` at the first "... wrote:" quotation header.

    A line ending in ``wrote:`` counts as the header when it starts the
    text, follows a blank line, or starts with ``On``. Clients that wrap
    the header put ``wrote:`` on the second line; the ``On ...`` line
    before it is cut too.
    """
    lines = text.splitlines()
    for i, line in enumerate(lines):
        if not _WROTE_RE.search(line):
            continue
        start = i
        prev = lines[i - 1] if i > 0 else ""
        if i > 0 and prev.strip() and prev.lstrip().startswith("On ") and not line.lstrip().startswith("On "):
            start = i - 1
            prev = lines[start - 1] if start > 0 else ""
        if start == 0 or not prev.strip() or lines[start].lstrip().startswith("On "):
            return "\n".join(lines[:start]).rstrip()
    return text.strip()


class MessageDecoder:
    """Turn a raw RFC 822 message into the attributes correlation needs."""

    def decode(self, raw: RawMessage) -> DecodedMessage:
        if not raw.rfc822_bytes:
            raise DecodeFailure(f"Message {raw.id} has an empty body")

        try:
            em = BytesParser(policy=policy.default).parsebytes(raw.rfc822_bytes)
            body = _as_text(em)
            subject = str(em.get("Subject") or "").strip()
            sender = str(em.get("From") or "").strip()
            in_reply_to = str(em.get("In-Reply-To") or "").strip()
        except (LookupError, UnicodeError, ValueError) as e:
            raise DecodeFailure(f"Message {raw.id} could not be decoded: {e}") from e

        _, address = parseaddr(sender)

        # Date parsing can be messy; fall back to the provider timestamp, then now
        try:
            dt = em.get("Date")
            received_at = dt.datetime if dt else None
        except Exception:
            received_at = None
        if received_at is None:
            received_at = raw.internal_date or datetime.now(timezone.utc)
        elif received_at.tzinfo is None:
            received_at = received_at.replace(tzinfo=timezone.utc)

        return DecodedMessage(
            plain_text=strip_quoted_reply(body),
            sender=sender,
            sender_address=address or None,
            in_reply_to_id=strip_message_id(in_reply_to) or None,
            subject=subject,
            received_at=received_at,
        )
