"""Short-lived cache of authenticated mailbox sessions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from loguru import logger

from outreachmail.application.connection import MailboxConnection
from outreachmail.application.ports.mailbox_client import MailboxClient, Session
from outreachmail.domain.errors import NotConnected

# Refresh a little before the provider says the token expires
EXPIRY_MARGIN = timedelta(seconds=60)


class SessionProvider:
    """Hands out a usable ``Session`` per scope.

    Sessions are values passed into each client call; nothing here is
    ambient. A cached session is reused until shortly before it expires.
    """

    def __init__(
        self,
        connection: MailboxConnection,
        client: MailboxClient,
        ttl_seconds: int = 3000,
    ) -> None:
        self.connection = connection
        self.client = client
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[str, Session] = {}

    async def get(self, scope: str) -> Session:
        now = datetime.now(timezone.utc)
        cached = self._cache.get(scope)
        if cached is not None and cached.expires_at - EXPIRY_MARGIN > now:
            return cached

        refresh_token = self.connection.get_credential(scope)
        if refresh_token is None:
            raise NotConnected(f"No mailbox connected for scope {scope}")

        session = await self.client.refresh_session(refresh_token)
        expires_at = min(session.expires_at, now + self.ttl)
        session = Session(access_token=session.access_token, expires_at=expires_at)
        self._cache[scope] = session
        logger.debug(f"Refreshed session for scope {scope}, valid until {expires_at.isoformat()}")
        return session

    def invalidate(self, scope: str) -> None:
        self._cache.pop(scope, None)
