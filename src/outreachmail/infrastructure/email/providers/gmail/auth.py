from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from loguru import logger

from outreachmail.application.ports.mailbox_client import Session
from outreachmail.domain.errors import AuthExpired, ConfigurationError, TransientError

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class GmailOAuthCredentials:
    """
    OAuth client registered for the shared mailbox.
    """
    client_id: str
    client_secret: str


class GmailTokenRefresher:
    """
    Responsible ONLY for exchanging a stored refresh token for an access
    token. No mailbox calls, no caching.
    """

    def __init__(self, creds: GmailOAuthCredentials | None, http: httpx.AsyncClient) -> None:
        self.creds = creds
        self.http = http

    async def refresh(self, refresh_token: str) -> Session:
        """
        Returns a Session. A rejected refresh token raises AuthExpired so the
        caller can mark the mailbox disconnected instead of retrying.
        """
        if self.creds is None:
            raise ConfigurationError("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are not set")

        try:
            response = await self.http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.creds.client_id,
                    "client_secret": self.creds.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientError(f"Token refresh failed: {e!s}") from e

        if response.status_code in (400, 401):
            error = _oauth_error(response)
            logger.warning(f"Refresh token rejected by Google: {error}")
            raise AuthExpired(f"Refresh token rejected: {error}")
        if response.status_code != 200:
            raise TransientError(f"Token endpoint returned HTTP {response.status_code}")

        data = response.json()
        expires_in = int(data.get("expires_in", 3600))
        return Session(
            access_token=data["access_token"],
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )


def _oauth_error(response: httpx.Response) -> str:
    try:
        return response.json().get("error", "unknown_error")
    except ValueError:
        return response.text[:200]
