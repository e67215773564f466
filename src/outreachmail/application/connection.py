"""Credential, cursor and connection-status bookkeeping for a mailbox scope."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from outreachmail.application.ports.key_value_store import KeyValueStore
from outreachmail.application.ports.secret_vault import SecretVault

REFRESH_TOKEN_KEY = "google_refresh_token"
HISTORY_ID_KEY = "google_history_id"
EMAIL_KEY = "google_user_email"
STATUS_KEY = "google_connection_status"

DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class ConnectionStatus:
    """Connection status as reported to the settings screen."""

    connected: bool
    email: Optional[str]
    disconnected: bool
    has_cursor: bool


class MailboxConnection:
    """Owns the durable per-scope state shared by every trigger.

    The refresh token and the history cursor are kept encrypted through the
    vault. The mailbox address and the disconnected marker are not secret
    and are stored as plain settings. Keys are suffixed with the scope, so
    ``google_refresh_token_team`` holds the team credential.
    """

    def __init__(self, vault: SecretVault, settings: KeyValueStore) -> None:
        self.vault = vault
        self.settings = settings

    @staticmethod
    def _key(key: str, scope: str) -> str:
        return f"{key}_{scope}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, scope: str, refresh_token: str, mailbox_address: str) -> None:
        """Store a fresh credential and restart synchronization from scratch."""
        if not refresh_token:
            raise ValueError("refresh_token is required")

        self.vault.put(scope, REFRESH_TOKEN_KEY, refresh_token)
        self.settings.upsert_setting(self._key(EMAIL_KEY, scope), mailbox_address)
        # A new authorization re-enters Uninitialized: the next push seeds the cursor
        self.vault.delete(scope, HISTORY_ID_KEY)
        self.settings.delete_setting(self._key(STATUS_KEY, scope))
        logger.info(f"Mailbox {mailbox_address} connected for scope {scope}")

    def disconnect(self, scope: str) -> int:
        """Forget everything stored for the scope."""
        removed = self.settings.delete_settings_with_suffix(f"_{scope}")
        logger.info(f"Mailbox disconnected for scope {scope} ({removed} settings removed)")
        return removed

    def mark_disconnected(self, scope: str) -> None:
        """Flag the credential as unusable without deleting it."""
        self.settings.upsert_setting(self._key(STATUS_KEY, scope), DISCONNECTED)
        logger.warning(f"Mailbox for scope {scope} marked disconnected; re-authorization required")

    def is_disconnected(self, scope: str) -> bool:
        return self.settings.get_setting(self._key(STATUS_KEY, scope)) == DISCONNECTED

    def status(self, scope: str) -> ConnectionStatus:
        email = self.settings.get_setting(self._key(EMAIL_KEY, scope))
        has_credential = self.settings.get_setting(self._key(REFRESH_TOKEN_KEY, scope)) is not None
        disconnected = self.is_disconnected(scope)
        return ConnectionStatus(
            connected=bool(email) and has_credential and not disconnected,
            email=email,
            disconnected=disconnected,
            has_cursor=self.settings.get_setting(self._key(HISTORY_ID_KEY, scope)) is not None,
        )

    # ------------------------------------------------------------------
    # Credential / cursor
    # ------------------------------------------------------------------

    def get_credential(self, scope: str) -> Optional[str]:
        return self.vault.get(scope, REFRESH_TOKEN_KEY)

    def mailbox_address(self, scope: str) -> Optional[str]:
        return self.settings.get_setting(self._key(EMAIL_KEY, scope))

    def get_cursor(self, scope: str) -> Optional[str]:
        return self.vault.get(scope, HISTORY_ID_KEY)

    def set_cursor(self, scope: str, cursor: str) -> None:
        self.vault.put(scope, HISTORY_ID_KEY, str(cursor))
        logger.debug(f"Saved cursor for scope {scope}: {cursor}")

    def clear_cursor(self, scope: str) -> None:
        self.vault.delete(scope, HISTORY_ID_KEY)
