"""Application layer - connection bookkeeping, session cache and use cases."""

from outreachmail.application.connection import ConnectionStatus, MailboxConnection
from outreachmail.application.sessions import SessionProvider

__all__ = [
    "ConnectionStatus",
    "MailboxConnection",
    "SessionProvider",
]
