"""Incremental mailbox synchronization from a durable history cursor."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from loguru import logger

from outreachmail.application.connection import MailboxConnection
from outreachmail.application.ports.correlation_store import CorrelationStore
from outreachmail.application.ports.mailbox_client import MailboxClient, Session
from outreachmail.application.sessions import SessionProvider
from outreachmail.application.use_cases.resolve_correlation import CorrelationResolver
from outreachmail.domain.entities.change_feed import ChangeFeedItem
from outreachmail.domain.entities.inbound_reply import InboundReply
from outreachmail.domain.errors import (
    AuthExpired,
    CursorInvalid,
    DecodeFailure,
    MessageNotFound,
    NotConnected,
)
from outreachmail.domain.models import Channel, ChangeType, SyncState
from outreachmail.infrastructure.email.decoder import MessageDecoder


@dataclass
class SyncStats:
    """Per-scope counters; sync failures are only visible here and in logs."""

    runs: int = 0
    coalesced: int = 0
    failures: int = 0
    replies_stored: int = 0
    duplicates: int = 0
    items_skipped: int = 0
    last_error: str | None = None
    last_success: datetime | None = None
    skip_reasons: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "runs": self.runs,
            "coalesced": self.coalesced,
            "failures": self.failures,
            "replies_stored": self.replies_stored,
            "duplicates": self.duplicates,
            "items_skipped": self.items_skipped,
            "skip_reasons": dict(self.skip_reasons),
            "last_error": self.last_error,
            "last_success": self.last_success.isoformat() if self.last_success else None,
        }


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one ``run_sync`` call.

    status is one of: synced, coalesced, uninitialized, disconnected,
    not_connected, cursor_reset.
    """

    status: str
    fetched: int = 0
    stored: int = 0
    duplicates: int = 0
    skipped: int = 0
    cursor: Optional[str] = None


class HistorySyncEngine:
    """Drive incremental synchronization for mailbox scopes.

    State per scope::

        Uninitialized -> Seeded -> Syncing -> Seeded
        Syncing -> CursorReset -> Seeded     (provider pruned our history)
        Syncing -> Disconnected              (credential expired)

    The cursor is written only after every item of the fetched batch was
    applied or deliberately skipped. Any exception in between leaves the old
    cursor in place, so the next run re-fetches the whole batch; inbound
    replies are upserted by provider message id, so reapplying is harmless.

    Only one run per scope executes at a time. A trigger that arrives while
    a run is in flight is dropped rather than queued.
    """

    def __init__(
        self,
        connection: MailboxConnection,
        sessions: SessionProvider,
        client: MailboxClient,
        store: CorrelationStore,
        resolver: CorrelationResolver,
        decoder: MessageDecoder | None = None,
        inbound_label: str = "INBOX",
        self_sent_label: str = "SENT",
        clear_labels: Iterable[str] = (),
    ) -> None:
        self.connection = connection
        self.sessions = sessions
        self.client = client
        self.store = store
        self.resolver = resolver
        self.decoder = decoder or MessageDecoder()
        self.inbound_label = inbound_label
        self.self_sent_label = self_sent_label
        self.clear_labels = tuple(clear_labels)

        self._in_flight: set[str] = set()
        self._reset_scopes: set[str] = set()
        self._stats: dict[str, SyncStats] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def stats(self, scope: str) -> SyncStats:
        return self._stats.setdefault(scope, SyncStats())

    def state(self, scope: str) -> SyncState:
        if scope in self._in_flight:
            return SyncState.SYNCING
        if self.connection.is_disconnected(scope):
            return SyncState.DISCONNECTED
        if self.connection.get_cursor(scope) is not None:
            return SyncState.SEEDED
        if scope in self._reset_scopes:
            return SyncState.CURSOR_RESET
        return SyncState.UNINITIALIZED

    def seed(self, scope: str, history_id: str) -> None:
        """Store the first observed history id as the cursor.

        No catch-up fetch happens: history before the seed has no anchor and
        is not replayed.
        """
        self.connection.set_cursor(scope, str(history_id))
        self._reset_scopes.discard(scope)
        logger.info(f"Seeded cursor for scope {scope} at history id {history_id}")

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def trigger(self, scope: str) -> Optional[SyncResult]:
        """Run a sync and log, rather than raise, any failure.

        Used by the webhook background task and the poller, whose callers
        never see sync errors.
        """
        try:
            return await self.run_sync(scope)
        except Exception as e:
            logger.exception(f"Sync for scope {scope} failed: {e}")
            return None

    async def run_sync(self, scope: str) -> SyncResult:
        if scope in self._in_flight:
            self.stats(scope).coalesced += 1
            logger.info(f"Sync for scope {scope} already running; trigger dropped")
            return SyncResult(status="coalesced")

        self._in_flight.add(scope)
        stats = self.stats(scope)
        stats.runs += 1
        try:
            result = await self._run(scope)
        except Exception as e:
            stats.failures += 1
            stats.last_error = f"{type(e).__name__}: {e}"
            raise
        finally:
            self._in_flight.discard(scope)

        if result.status == "synced":
            stats.last_success = datetime.now(timezone.utc)
            stats.last_error = None
        return result

    async def _run(self, scope: str) -> SyncResult:
        if self.connection.is_disconnected(scope):
            logger.debug(f"Scope {scope} is disconnected; skipping sync")
            return SyncResult(status="disconnected")

        cursor = self.connection.get_cursor(scope)
        if cursor is None:
            logger.debug(f"Scope {scope} has no cursor yet; waiting for a push to seed it")
            return SyncResult(status="uninitialized")

        try:
            session = await self.sessions.get(scope)
            try:
                page = await self.client.fetch_history(session, cursor)
            except CursorInvalid:
                self.connection.clear_cursor(scope)
                self._reset_scopes.add(scope)
                logger.warning(
                    f"History for scope {scope} expired before cursor {cursor}; "
                    "cursor cleared, the next push will reseed it"
                )
                return SyncResult(status="cursor_reset")

            logger.info(f"Fetched {len(page.items)} history items for scope {scope} since {cursor}")
            result = await self._apply_batch(scope, session, page.items)

        except NotConnected:
            logger.warning(f"No credential stored for scope {scope}; skipping sync")
            return SyncResult(status="not_connected")
        except AuthExpired as e:
            self.sessions.invalidate(scope)
            self.connection.mark_disconnected(scope)
            self.stats(scope).last_error = f"AuthExpired: {e}"
            return SyncResult(status="disconnected")

        # Every item is applied or skipped; only now may the cursor advance
        self.connection.set_cursor(scope, page.new_cursor)
        logger.info(
            f"Sync for scope {scope} complete: stored={result.stored}, "
            f"duplicates={result.duplicates}, skipped={result.skipped}, cursor={page.new_cursor}"
        )
        return SyncResult(
            status="synced",
            fetched=len(page.items),
            stored=result.stored,
            duplicates=result.duplicates,
            skipped=result.skipped,
            cursor=page.new_cursor,
        )

    async def _apply_batch(
        self, scope: str, session: Session, items: list[ChangeFeedItem]
    ) -> SyncResult:
        stats = self.stats(scope)
        stored = duplicates = skipped = 0

        # Provider order is preserved; a repeat within the batch finds the reply already stored
        for item in items:
            outcome = await self._apply_item(session, item)
            if outcome == "stored":
                stored += 1
                stats.replies_stored += 1
            elif outcome == "duplicate":
                duplicates += 1
                stats.duplicates += 1
            else:
                skipped += 1
                stats.items_skipped += 1
                stats.skip_reasons[outcome] = stats.skip_reasons.get(outcome, 0) + 1

        return SyncResult(status="applied", stored=stored, duplicates=duplicates, skipped=skipped)

    def _is_inbound(self, item: ChangeFeedItem) -> bool:
        return (
            item.change_type == ChangeType.MESSAGE_ADDED
            and item.has_label(self.inbound_label)
            and not item.has_label(self.self_sent_label)
        )

    async def _apply_item(self, session: Session, item: ChangeFeedItem) -> str:
        if not self._is_inbound(item):
            logger.debug(f"Skipping {item.change_type.value} for {item.message_id} labels={sorted(item.labels)}")
            return "not_inbound"

        existing = self.store.get_inbound_reply(item.message_id)
        if existing is not None:
            logger.debug(f"Message {item.message_id} already stored as reply {existing.id}")
            # A previous run may have stored it and failed before clearing labels
            await self._clear_labels(session, item)
            return "duplicate"

        try:
            raw = await self.client.fetch_message(session, item.message_id)
        except MessageNotFound:
            logger.warning(f"Message {item.message_id} vanished before it could be fetched; skipping")
            return "not_found"
        except DecodeFailure as e:
            logger.warning(f"Skipping message {item.message_id} with an unreadable body: {e}")
            return "decode_failure"

        try:
            decoded = self.decoder.decode(raw)
        except DecodeFailure as e:
            logger.warning(f"Skipping undecodable message {item.message_id}: {e}")
            return "decode_failure"

        correlation = self.resolver.resolve(decoded)
        reply = InboundReply(
            id=str(uuid.uuid4()),
            provider_message_id=item.message_id,
            content=decoded.plain_text,
            channel=Channel.EMAIL,
            received_at=decoded.received_at,
            sender=decoded.sender,
            contact_id=correlation.contact.id if correlation.contact else None,
            outbound_message_id=correlation.outbound.id if correlation.outbound else None,
            provider_thread_id=raw.thread_id or item.thread_id,
            subject=decoded.subject,
        )
        created = self.store.insert_inbound_reply(reply)

        await self._clear_labels(session, item)

        if not created:
            return "duplicate"
        logger.info(
            f"Stored reply {item.message_id} from {decoded.sender!r}"
            + (f" for contact {reply.contact_id}" if reply.contact_id else " (unattributed)")
        )
        return "stored"

    async def _clear_labels(self, session: Session, item: ChangeFeedItem) -> None:
        for label in self.clear_labels:
            if not item.has_label(label):
                continue
            try:
                await self.client.remove_label(session, item.message_id, label)
            except Exception as e:
                logger.warning(f"Could not remove label {label} from {item.message_id}: {e}")
