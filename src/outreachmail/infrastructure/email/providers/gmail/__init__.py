"""Gmail REST adapter."""

from outreachmail.infrastructure.email.providers.gmail.auth import (
    GmailOAuthCredentials,
    GmailTokenRefresher,
)
from outreachmail.infrastructure.email.providers.gmail.client import GmailMailboxClient

__all__ = [
    "GmailMailboxClient",
    "GmailOAuthCredentials",
    "GmailTokenRefresher",
]
