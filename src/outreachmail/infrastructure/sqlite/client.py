"""SQLite client for secure settings, contacts and message correlation records."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from loguru import logger

from outreachmail.domain.entities.contact import Contact
from outreachmail.domain.entities.inbound_reply import InboundReply
from outreachmail.domain.entities.outbound_message import OutboundMessage
from outreachmail.domain.models import Channel


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteClient:
    """SQLite store implementing both ``KeyValueStore`` and ``CorrelationStore``."""

    def __init__(self, db_path: str | Path = "data/outreachmail.db"):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            conn.executescript("""
                PRAGMA journal_mode=WAL;

                CREATE TABLE IF NOT EXISTS secure_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS contacts (
                    id TEXT PRIMARY KEY,
                    public_id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    contact_email TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS outbound_messages (
                    id TEXT PRIMARY KEY,
                    contact_id TEXT NOT NULL,
                    provider_message_id TEXT NOT NULL UNIQUE,
                    provider_thread_id TEXT,
                    rfc_message_id TEXT,
                    channel TEXT NOT NULL,
                    subject TEXT NOT NULL DEFAULT '',
                    sent_at TEXT NOT NULL,
                    sent_by TEXT,

                    FOREIGN KEY(contact_id) REFERENCES contacts(id)
                );

                CREATE TABLE IF NOT EXISTS inbound_replies (
                    id TEXT PRIMARY KEY,
                    provider_message_id TEXT NOT NULL UNIQUE,
                    provider_thread_id TEXT,
                    content TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    subject TEXT NOT NULL DEFAULT '',
                    received_at TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    contact_id TEXT,
                    outbound_message_id TEXT,
                    created_at TEXT NOT NULL,

                    FOREIGN KEY(contact_id) REFERENCES contacts(id),
                    FOREIGN KEY(outbound_message_id) REFERENCES outbound_messages(id)
                );

                CREATE INDEX IF NOT EXISTS idx_contacts_email
                    ON contacts(contact_email);
                CREATE INDEX IF NOT EXISTS idx_outbound_rfc_id
                    ON outbound_messages(rfc_message_id);
                CREATE INDEX IF NOT EXISTS idx_replies_contact_received
                    ON inbound_replies(contact_id, received_at);
            """)
            logger.info(f"SQLite database initialized at {self.db_path}")

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Secure settings (vault backing store)
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM secure_settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def upsert_setting(self, key: str, value: str) -> None:
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO secure_settings (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, value, _now()),
            )

    def delete_setting(self, key: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM secure_settings WHERE key = ?", (key,))

    def delete_settings_with_suffix(self, suffix: str) -> int:
        escaped = suffix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM secure_settings WHERE key LIKE ? ESCAPE '\\'",
                (f"%{escaped}",),
            )
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    @staticmethod
    def _contact(row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            public_id=row["public_id"],
            name=row["name"],
            email=row["contact_email"],
        )

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        return self._contact(row) if row else None

    def get_contact_by_public_id(self, public_id: str) -> Optional[Contact]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM contacts WHERE public_id = ?", (public_id,)).fetchone()
        return self._contact(row) if row else None

    def find_contact_by_email(self, email: str) -> Optional[Contact]:
        """Exact, case-sensitive match on the stored contact email."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM contacts WHERE contact_email = ? ORDER BY created_at LIMIT 1",
                (email,),
            ).fetchone()
        return self._contact(row) if row else None

    def upsert_contact(self, public_id: str, name: str, email: Optional[str]) -> Contact:
        now = _now()
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO contacts (id, public_id, name, contact_email, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(public_id) DO UPDATE SET
                       name = excluded.name,
                       contact_email = excluded.contact_email,
                       updated_at = excluded.updated_at""",
                (str(uuid.uuid4()), public_id, name, email, now, now),
            )
            row = conn.execute("SELECT * FROM contacts WHERE public_id = ?", (public_id,)).fetchone()
        return self._contact(row)

    # ------------------------------------------------------------------
    # Outbound messages
    # ------------------------------------------------------------------

    @staticmethod
    def _outbound(row: sqlite3.Row) -> OutboundMessage:
        return OutboundMessage(
            id=row["id"],
            contact_id=row["contact_id"],
            provider_message_id=row["provider_message_id"],
            provider_thread_id=row["provider_thread_id"],
            channel=Channel(row["channel"]),
            sent_at=_parse_ts(row["sent_at"]),
            sent_by=row["sent_by"],
            subject=row["subject"],
            rfc_message_id=row["rfc_message_id"],
        )

    def find_outbound_by_provider_id(self, provider_message_id: str) -> Optional[OutboundMessage]:
        """Look up a sent message by provider id, or by the Message-ID recipients saw."""
        with self._connection() as conn:
            row = conn.execute(
                """SELECT * FROM outbound_messages
                   WHERE provider_message_id = ? OR rfc_message_id = ?
                   ORDER BY provider_message_id = ? DESC
                   LIMIT 1""",
                (provider_message_id, provider_message_id, provider_message_id),
            ).fetchone()
        return self._outbound(row) if row else None

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
    ) -> OutboundMessage:
        msg = OutboundMessage(
            id=str(uuid.uuid4()),
            contact_id=contact_id,
            provider_message_id=provider_message_id,
            provider_thread_id=provider_thread_id,
            channel=channel,
            sent_at=sent_at,
            sent_by=sent_by,
            subject=subject,
            rfc_message_id=rfc_message_id,
        )
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO outbound_messages
                   (id, contact_id, provider_message_id, provider_thread_id, rfc_message_id,
                    channel, subject, sent_at, sent_by)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    msg.id, contact_id, provider_message_id, provider_thread_id, rfc_message_id,
                    channel.value, subject, sent_at.isoformat(), sent_by,
                ),
            )
        logger.debug(f"Recorded outbound message {provider_message_id} for contact {contact_id}")
        return msg

    # ------------------------------------------------------------------
    # Inbound replies
    # ------------------------------------------------------------------

    @staticmethod
    def _reply(row: sqlite3.Row) -> InboundReply:
        return InboundReply(
            id=row["id"],
            provider_message_id=row["provider_message_id"],
            content=row["content"],
            channel=Channel(row["channel"]),
            received_at=_parse_ts(row["received_at"]),
            sender=row["sender"],
            contact_id=row["contact_id"],
            outbound_message_id=row["outbound_message_id"],
            provider_thread_id=row["provider_thread_id"],
            subject=row["subject"],
        )

    def insert_inbound_reply(self, reply: InboundReply) -> bool:
        """Insert unless a reply with the same provider message id exists.

        Returns True when a new row was written.
        """
        with self._connection() as conn:
            cursor = conn.execute(
                """INSERT INTO inbound_replies
                   (id, provider_message_id, provider_thread_id, content, channel, subject,
                    received_at, sender, contact_id, outbound_message_id, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(provider_message_id) DO NOTHING""",
                (
                    reply.id, reply.provider_message_id, reply.provider_thread_id, reply.content,
                    reply.channel.value, reply.subject, reply.received_at.isoformat(), reply.sender,
                    reply.contact_id, reply.outbound_message_id, _now(),
                ),
            )
            return cursor.rowcount == 1

    def get_inbound_reply(self, provider_message_id: str) -> Optional[InboundReply]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM inbound_replies WHERE provider_message_id = ?",
                (provider_message_id,),
            ).fetchone()
        return self._reply(row) if row else None

    def list_inbound_replies(
        self,
        contact_id: Optional[str] = None,
        unattributed_only: bool = False,
        limit: int = 100,
    ) -> list[InboundReply]:
        """Most recent replies first."""
        query = "SELECT * FROM inbound_replies"
        params: list = []
        if unattributed_only:
            query += " WHERE contact_id IS NULL"
        elif contact_id is not None:
            query += " WHERE contact_id = ?"
            params.append(contact_id)
        query += " ORDER BY received_at DESC LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._reply(row) for row in rows]

