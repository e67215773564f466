"""Enumerations shared across the outreach mailbox."""

from enum import Enum


class Channel(str, Enum):
    """Delivery channel of an outbound message or inbound reply."""

    EMAIL = "email"
    FACEBOOK = "facebook"


class ChangeType(str, Enum):
    """Kinds of events reported by the provider's history feed."""

    MESSAGE_ADDED = "message_added"
    MESSAGE_DELETED = "message_deleted"
    LABELS_ADDED = "labels_added"
    LABELS_REMOVED = "labels_removed"


class SyncState(str, Enum):
    """Synchronization state of one mailbox scope."""

    UNINITIALIZED = "uninitialized"
    SEEDED = "seeded"
    SYNCING = "syncing"
    CURSOR_RESET = "cursor_reset"
    DISCONNECTED = "disconnected"
