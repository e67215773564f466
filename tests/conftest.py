"""Shared fixtures: a temporary SQLite store and a scripted mailbox client."""

import os
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import Optional

import pytest

# Settings() requires an encryption key; set one before the app modules load
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

from outreachmail.application.connection import MailboxConnection
from outreachmail.application.ports.mailbox_client import (
    HistoryPage,
    RawMessage,
    SentMessage,
    Session,
)
from outreachmail.application.sessions import SessionProvider
from outreachmail.application.use_cases.resolve_correlation import CorrelationResolver
from outreachmail.application.use_cases.sync_history import HistorySyncEngine
from outreachmail.domain import ChangeFeedItem, ChangeType
from outreachmail.domain.errors import MessageNotFound
from outreachmail.infrastructure.email.decoder import MessageDecoder
from outreachmail.infrastructure.sqlite.client import SQLiteClient
from outreachmail.infrastructure.vault.secret_vault import SecretVault

SCOPE = "team"
MAILBOX = "team@example.com"


def added(message_id: str, *labels: str, thread_id: Optional[str] = None) -> ChangeFeedItem:
    return ChangeFeedItem(
        change_type=ChangeType.MESSAGE_ADDED,
        message_id=message_id,
        labels=frozenset(labels or ("INBOX",)),
        thread_id=thread_id,
    )


def rfc822(
    sender: str = "Jane Doe <jane@example.com>",
    body: str = "Sounds good.",
    subject: str = "Re: Hello",
    in_reply_to: Optional[str] = None,
    date: Optional[str] = "Mon, 05 Feb 2024 10:00:00 +0000",
) -> bytes:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = MAILBOX
    msg["Subject"] = subject
    if date:
        msg["Date"] = date
    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
    msg.set_content(body)
    return msg.as_bytes()


def raw_message(message_id: str, thread_id: str = "t-1", **kwargs) -> RawMessage:
    return RawMessage(
        id=message_id,
        thread_id=thread_id,
        label_ids=frozenset({"INBOX"}),
        rfc822_bytes=rfc822(**kwargs),
    )


class FakeMailboxClient:
    """Scripted ``MailboxClient``.

    ``pages`` is consumed one entry per ``fetch_history`` call; an entry that
    is an exception is raised instead. ``messages`` maps ids to a
    ``RawMessage`` or an exception.
    """

    def __init__(self) -> None:
        self.pages: list = []
        self.messages: dict = {}
        self.refresh_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.refreshes = 0
        self.history_calls: list[str] = []
        self.fetch_calls: list[str] = []
        self.sent: list[tuple[str, Optional[str]]] = []
        self.removed_labels: list[tuple[str, str]] = []
        self.watches: list[tuple[str, list[str]]] = []

    async def refresh_session(self, refresh_token: str) -> Session:
        self.refreshes += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        return Session(
            access_token=f"access-{self.refreshes}",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    async def fetch_history(self, session: Session, cursor: str) -> HistoryPage:
        self.history_calls.append(cursor)
        page = self.pages.pop(0) if self.pages else HistoryPage(items=[], new_cursor=cursor)
        if isinstance(page, Exception):
            raise page
        return page

    async def fetch_message(self, session: Session, message_id: str) -> RawMessage:
        self.fetch_calls.append(message_id)
        msg = self.messages.get(message_id)
        if msg is None:
            raise MessageNotFound(message_id)
        if isinstance(msg, Exception):
            raise msg
        return msg

    async def send(self, session: Session, raw: str, thread_id: Optional[str] = None) -> SentMessage:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((raw, thread_id))
        n = len(self.sent)
        return SentMessage(
            provider_message_id=f"gm-{n}",
            provider_thread_id=thread_id or f"thread-{n}",
            rfc_message_id=f"msg-{n}@mail.gmail.com",
        )

    async def remove_label(self, session: Session, message_id: str, label: str) -> None:
        self.removed_labels.append((message_id, label))

    async def watch(self, session: Session, topic: str, label_ids) -> dict:
        self.watches.append((topic, list(label_ids)))
        return {"historyId": "9000", "expiration": "1700000000000"}


@pytest.fixture
def store(tmp_path) -> SQLiteClient:
    return SQLiteClient(tmp_path / "test.db")


@pytest.fixture
def vault(store) -> SecretVault:
    return SecretVault(store, "test-encryption-key", "test-salt")


@pytest.fixture
def connection(vault, store) -> MailboxConnection:
    return MailboxConnection(vault, store)


@pytest.fixture
def connected(connection) -> MailboxConnection:
    connection.connect(SCOPE, "refresh-token-1", MAILBOX)
    return connection


@pytest.fixture
def client() -> FakeMailboxClient:
    return FakeMailboxClient()


@pytest.fixture
def sessions(connection, client) -> SessionProvider:
    return SessionProvider(connection, client)


@pytest.fixture
def engine(connection, sessions, client, store) -> HistorySyncEngine:
    return HistorySyncEngine(
        connection=connection,
        sessions=sessions,
        client=client,
        store=store,
        resolver=CorrelationResolver(store),
        decoder=MessageDecoder(),
    )
