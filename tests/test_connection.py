"""Tests for connection bookkeeping and the session cache."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import MAILBOX, SCOPE

from outreachmail.domain.errors import NotConnected


class TestMailboxConnection:
    def test_status_when_not_connected(self, connection):
        status = connection.status(SCOPE)

        assert not status.connected
        assert status.email is None
        assert not status.has_cursor

    def test_connect_stores_encrypted_credential(self, connection, store):
        connection.connect(SCOPE, "refresh-1", MAILBOX)

        assert connection.get_credential(SCOPE) == "refresh-1"
        assert store.get_setting("google_refresh_token_team") != "refresh-1"
        assert connection.mailbox_address(SCOPE) == MAILBOX
        assert connection.status(SCOPE).connected

    def test_connect_drops_previous_cursor(self, connected):
        connected.set_cursor(SCOPE, "42")
        connected.connect(SCOPE, "refresh-2", MAILBOX)

        assert connected.get_cursor(SCOPE) is None

    def test_mark_disconnected_keeps_credential(self, connected):
        connected.mark_disconnected(SCOPE)

        status = connected.status(SCOPE)
        assert status.disconnected
        assert not status.connected
        assert connected.get_credential(SCOPE) == "refresh-token-1"

    def test_disconnect_removes_everything_for_scope(self, connected, vault):
        connected.set_cursor(SCOPE, "42")
        vault.put("other", "google_refresh_token", "keep-me")

        connected.disconnect(SCOPE)

        assert connected.get_credential(SCOPE) is None
        assert connected.get_cursor(SCOPE) is None
        assert connected.mailbox_address(SCOPE) is None
        assert vault.get("other", "google_refresh_token") == "keep-me"

    def test_connect_requires_token(self, connection):
        with pytest.raises(ValueError):
            connection.connect(SCOPE, "", MAILBOX)


class TestSessionProvider:
    async def test_session_is_cached(self, sessions, connected, client):
        first = await sessions.get(SCOPE)
        second = await sessions.get(SCOPE)

        assert first is second
        assert client.refreshes == 1

    async def test_session_ttl_caps_expiry(self, connected, client):
        from outreachmail.application.sessions import SessionProvider

        provider = SessionProvider(connected, client, ttl_seconds=120)
        session = await provider.get(SCOPE)

        assert session.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=120)

    async def test_expired_session_is_refreshed(self, connected, client):
        from outreachmail.application.sessions import SessionProvider

        provider = SessionProvider(connected, client, ttl_seconds=30)
        await provider.get(SCOPE)
        await provider.get(SCOPE)

        assert client.refreshes == 2

    async def test_invalidate(self, sessions, connected, client):
        await sessions.get(SCOPE)
        sessions.invalidate(SCOPE)
        await sessions.get(SCOPE)

        assert client.refreshes == 2

    async def test_not_connected(self, sessions):
        with pytest.raises(NotConnected):
            await sessions.get(SCOPE)
