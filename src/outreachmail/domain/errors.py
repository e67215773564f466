"""
Exception hierarchy for the outreach mailbox.

Provider and network failures abort the current sync run; per-item
failures (``DecodeFailure``) are contained to the item that raised them.
"""


class OutreachMailError(Exception):
    """Base exception for all errors raised by this package."""


class ConfigurationError(OutreachMailError):
    """Raised for invalid or missing configuration."""


class VaultError(OutreachMailError):
    """Base exception for secret vault errors."""


class VaultIntegrityError(VaultError):
    """Raised when a stored ciphertext fails authentication."""


class MailboxError(OutreachMailError):
    """Base exception for mailbox provider errors."""


class AuthExpired(MailboxError):
    """The stored credential can no longer be exchanged for a session."""


class CursorInvalid(MailboxError):
    """The provider no longer holds history as old as the stored cursor."""


class TransientError(MailboxError):
    """Network failure, timeout, rate limit or provider-side 5xx."""


class MessageNotFound(MailboxError):
    """The requested message no longer exists in the mailbox."""


class NotConnected(MailboxError):
    """No credential is stored for the mailbox scope."""


class DecodeFailure(OutreachMailError):
    """A fetched message could not be decoded into text."""


class MalformedPush(OutreachMailError):
    """A push notification envelope could not be decoded."""


class SendError(OutreachMailError):
    """An outbound message could not be composed or sent."""
