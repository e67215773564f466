"""Infrastructure layer - storage, secrets, provider adapters and configuration."""

from outreachmail.infrastructure.settings import Settings, get_settings
from outreachmail.infrastructure.sqlite.client import SQLiteClient

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # SQLite
    "SQLiteClient",
]
