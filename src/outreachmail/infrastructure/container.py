"""Wire settings, storage and adapters into the application services."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from outreachmail.application.connection import MailboxConnection
from outreachmail.application.poller import SyncPoller
from outreachmail.application.ports.mailbox_client import MailboxClient
from outreachmail.application.sessions import SessionProvider
from outreachmail.application.use_cases.ingest_push import PushIngress
from outreachmail.application.use_cases.resolve_correlation import CorrelationResolver
from outreachmail.application.use_cases.send_outbound import OutboundDispatcher
from outreachmail.application.use_cases.sync_history import HistorySyncEngine
from outreachmail.infrastructure.email.decoder import MessageDecoder
from outreachmail.infrastructure.email.providers.gmail import (
    GmailMailboxClient,
    GmailOAuthCredentials,
)
from outreachmail.infrastructure.settings import Settings, get_settings
from outreachmail.infrastructure.sqlite.client import SQLiteClient
from outreachmail.infrastructure.vault.secret_vault import SecretVault


@dataclass
class Services:
    """Everything a request handler or the worker needs."""

    settings: Settings
    store: SQLiteClient
    vault: SecretVault
    connection: MailboxConnection
    client: MailboxClient
    sessions: SessionProvider
    engine: HistorySyncEngine
    ingress: PushIngress
    dispatcher: OutboundDispatcher
    poller: SyncPoller

    @property
    def scope(self) -> str:
        return self.settings.mailbox_scope

    async def aclose(self) -> None:
        await self.poller.aclose()
        aclose = getattr(self.client, "aclose", None)
        if aclose is not None:
            await aclose()


def build_services(
    settings: Settings | None = None,
    client: MailboxClient | None = None,
    store: SQLiteClient | None = None,
) -> Services:
    """Build the service graph. ``client`` and ``store`` may be injected."""
    settings = settings or get_settings()
    store = store or SQLiteClient(settings.sqlite_db_path)
    vault = SecretVault(
        store,
        settings.encryption_key.get_secret_value(),
        settings.encryption_salt,
    )

    if client is None:
        oauth = None
        if settings.google_client_id and settings.google_client_secret:
            oauth = GmailOAuthCredentials(
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret.get_secret_value(),
            )
        else:
            logger.warning("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET missing; token refresh will fail")
        client = GmailMailboxClient(oauth, timeout=settings.http_timeout_seconds)

    connection = MailboxConnection(vault, store)
    sessions = SessionProvider(connection, client, ttl_seconds=settings.session_ttl_seconds)
    engine = HistorySyncEngine(
        connection=connection,
        sessions=sessions,
        client=client,
        store=store,
        resolver=CorrelationResolver(store),
        decoder=MessageDecoder(),
        inbound_label=settings.inbound_label,
        self_sent_label=settings.self_sent_label,
        clear_labels=settings.clear_label_list,
    )

    return Services(
        settings=settings,
        store=store,
        vault=vault,
        connection=connection,
        client=client,
        sessions=sessions,
        engine=engine,
        ingress=PushIngress(engine, connection, settings.mailbox_scope),
        dispatcher=OutboundDispatcher(sessions, client, store, connection, settings.mailbox_scope),
        poller=SyncPoller(engine, [settings.mailbox_scope], settings.poll_interval_seconds),
    )


# Singleton instance
_services: Services | None = None


def get_services() -> Services:
    """Get or create the services singleton."""
    global _services
    if _services is None:
        _services = build_services()
    return _services
