from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from outreachmail.domain.entities.change_feed import ChangeFeedItem

@dataclass(frozen=True)
class Session:
    # Explicit authenticated session; passed into every client call
    access_token: str
    expires_at: datetime

@dataclass(frozen=True)
class HistoryPage:
    items: list[ChangeFeedItem]
    new_cursor: str

@dataclass(frozen=True)
class RawMessage:
    id: str
    thread_id: Optional[str]
    label_ids: frozenset[str]
    rfc822_bytes: bytes
    internal_date: Optional[datetime] = None

@dataclass(frozen=True)
class SentMessage:
    provider_message_id: str
    provider_thread_id: Optional[str]
    rfc_message_id: Optional[str] = None

class MailboxClient(Protocol):
    """Provider mailbox contract.

    Failures surface as ``AuthExpired``, ``CursorInvalid``, ``MessageNotFound``
    or ``TransientError`` from ``outreachmail.domain.errors``. ``fetch_message``
    raises ``DecodeFailure`` when the provider returns a body it cannot decode.
    """

    async def refresh_session(self, refresh_token: str) -> Session: ...
    async def fetch_history(self, session: Session, cursor: str) -> HistoryPage: ...
    async def fetch_message(self, session: Session, message_id: str) -> RawMessage: ...
    async def send(self, session: Session, raw: str, thread_id: Optional[str] = None) -> SentMessage: ...
    async def remove_label(self, session: Session, message_id: str, label: str) -> None: ...
    async def watch(self, session: Session, topic: str, label_ids: Sequence[str]) -> dict: ...
